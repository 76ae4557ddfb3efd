"""site_archiver.rewrite: localization of absolute URLs in captured text."""

from __future__ import annotations

from .rewriter import PathRewriter, fix_hsl_variables

__all__ = ["PathRewriter", "fix_hsl_variables"]
