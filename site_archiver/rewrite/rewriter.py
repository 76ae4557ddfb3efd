"""Rewriting of absolute URLs inside captured scripts, stylesheets and route markup.

Same-origin URLs become origin-relative paths, cross-origin URLs move under
``/_external/<host>/...`` and analytics URLs are left alone (markup drops the
tags that load them). Every substitution keeps the original delimiter. Passes
repeat until the text stops changing, so ``rewrite(rewrite(x)) == rewrite(x)``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Sequence, Tuple

from site_archiver.errors import RewriteFailure
from site_archiver.logger import logger
from site_archiver.utils import OriginPolicy

__all__ = (
    "PathRewriter",
    "SCRIPT_SUFFIXES",
    "STYLESHEET_SUFFIXES",
    "ANALYTICS_PLACEHOLDERS",
)

SCRIPT_SUFFIXES: Tuple[str, ...] = (".js", ".mjs")
STYLESHEET_SUFFIXES: Tuple[str, ...] = (".css",)

# host (group "host") and optional path, query or fragment (group "path") of an
# absolute URL, bounded by the delimiter class passed in
_URL_TEMPLATE = r"https?://(?P<host>[^{stop}/?#\s]+)(?P<path>[/?#][^{stop}]*)?"


def _url(stop: str) -> str:
    return _URL_TEMPLATE.format(stop=stop)


_QUOTED_URL = _url("\"'")

_IMPORT_FROM_RE = re.compile(
    r"(?P<lead>\bfrom\s*)(?P<q>[\"'])" + _QUOTED_URL + r"(?P=q)", re.IGNORECASE
)
_DYNAMIC_IMPORT_RE = re.compile(
    r"(?P<lead>\bimport\s*\(\s*)(?P<q>[\"'])" + _QUOTED_URL + r"(?P=q)", re.IGNORECASE
)
_TEMPLATE_RE = re.compile(r"(?P<lead>)(?P<q>`)" + _url("`$") + r"(?P=q)", re.IGNORECASE)
_QUOTED_RE = re.compile(r"(?P<lead>)(?P<q>[\"'])" + _QUOTED_URL + r"(?P=q)", re.IGNORECASE)
_CSS_URL_RE = re.compile(
    r"(?P<lead>url\(\s*)(?P<q>[\"']?)" + _url("\"'()\\s") + r"(?P=q)(?=\s*\))", re.IGNORECASE
)
_ATTR_RE = re.compile(
    r"(?P<lead>\b(?:href|src)\s*=\s*)(?P<q>[\"'])" + _QUOTED_URL + r"(?P=q)", re.IGNORECASE
)

# bare same-origin prefix left over in text the delimited passes cannot see
# (e.g. template literals with ${...} placeholders)
_ORIGIN_PREFIX_RE = re.compile(
    r"https?://(?P<host>[a-z0-9.-]+(?::\d+)?)(?=(?P<next>[/?#]))", re.IGNORECASE
)

_RGB_VAR_RE = re.compile(r"rgb\(var\(--([^)]+)\)\)")

# (pattern, placeholder) pairs applied to markup before URL rewriting
ANALYTICS_PLACEHOLDERS: Sequence[Tuple[re.Pattern[str], str]] = (
    (
        re.compile(
            r"<script[^>]*src=[\"'][^\"']*"
            r"(?:google-analytics|googletagmanager|doubleclick|googleadservices|hotjar|ahrefs)"
            r"[^\"']*[\"'][^>]*>\s*</script>",
            re.IGNORECASE,
        ),
        "<!-- Analytics script removed -->",
    ),
    (
        re.compile(
            r"<script[^>]*>(?:(?!</script>)[\s\S])*?googletagmanager\.com/gtm\.js[\s\S]*?</script>",
            re.IGNORECASE,
        ),
        "<!-- GTM script removed -->",
    ),
    (
        re.compile(
            r"<script[^>]*>(?:(?!</script>)[\s\S])*?_hjSettings[\s\S]*?</script>", re.IGNORECASE
        ),
        "<!-- Hotjar script removed -->",
    ),
    (
        re.compile(
            r"<script[^>]*>(?:(?!</script>)[\s\S])*?window\.dataLayer(?:(?!</script>)[\s\S])*?gtag[\s\S]*?</script>",
            re.IGNORECASE,
        ),
        "<!-- gtag script removed -->",
    ),
    (
        re.compile(
            r"<noscript>(?:(?!</noscript>)[\s\S])*?googletagmanager\.com/ns\.html[\s\S]*?</noscript>",
            re.IGNORECASE,
        ),
        "<!-- GTM noscript removed -->",
    ),
)


@dataclass(slots=True)
class PathRewriter:
    """Localizes URLs for one archived site.

    ``passthrough_hosts`` are hostname fragments (``google``, ``facebook``)
    whose URLs stay absolute inside scripts and stylesheets: SDK loaders build
    further URLs from them at runtime.
    """

    policy: OriginPolicy
    passthrough_hosts: Tuple[str, ...] = ()

    # -- URL classification ----------------------------------------------

    def localize(self, host: str, path: str, *, in_script: bool) -> str | None:
        """Local replacement for ``host`` + ``path``; None keeps the URL untouched."""
        host = _hostname(host)
        if self.policy.is_same_origin(host):
            if not path:
                # scripts concatenate a bare origin with "/..." paths
                return "" if in_script else "/"
            return path if path.startswith("/") else "/" + path
        if self.policy.is_blocked(host):
            return None
        if in_script and any(fragment in host for fragment in self.passthrough_hosts):
            return None
        if not path:
            return None
        return self.policy.external_path(host, path)

    def _substitute(self, pattern: re.Pattern[str], text: str, *, in_script: bool) -> str:
        def repl(match: re.Match[str]) -> str:
            local = self.localize(match.group("host"), match.group("path") or "", in_script=in_script)
            if local is None:
                return match.group(0)
            return f"{match.group('lead')}{match.group('q')}{local}{match.group('q')}"

        return pattern.sub(repl, text)

    def _strip_origin(self, text: str) -> str:
        def repl(match: re.Match[str]) -> str:
            if self.policy.is_same_origin(_hostname(match.group("host"))):
                return "" if match.group("next") == "/" else "/"
            return match.group(0)

        return _ORIGIN_PREFIX_RE.sub(repl, text)

    def _apply(self, text: str, patterns: Sequence[re.Pattern[str]], *, in_script: bool) -> str:
        for pattern in patterns:
            text = self._substitute(pattern, text, in_script=in_script)
        return text

    @staticmethod
    def _until_stable(rewrite_once: Callable[[str], str], text: str) -> str:
        """Repeat *rewrite_once* until it no longer changes *text*.

        A single pass can leave a literal that only becomes visible once a
        neighbouring one has been rewritten (a closing quote re-read as an
        opening one). Every pass that changes the text removes at least one
        ``scheme://`` prefix, analytics tag or ``rgb(var(...))`` wrapper, so
        the loop ends.
        """
        while True:
            rewritten = rewrite_once(text)
            if rewritten == text:
                return text
            text = rewritten

    # -- text classes ------------------------------------------------------

    def _script_pass(self, text: str) -> str:
        text = self._apply(
            text, (_IMPORT_FROM_RE, _DYNAMIC_IMPORT_RE, _TEMPLATE_RE, _QUOTED_RE), in_script=True
        )
        return self._strip_origin(text)

    def _stylesheet_pass(self, text: str) -> str:
        text = self._apply(text, (_CSS_URL_RE, _QUOTED_RE), in_script=True)
        return self._strip_origin(text)

    def _markup_pass(self, text: str) -> str:
        text = fix_hsl_variables(text)
        for pattern, placeholder in ANALYTICS_PLACEHOLDERS:
            text = pattern.sub(placeholder, text)
        return self._substitute(_ATTR_RE, text, in_script=False)

    def rewrite_script(self, text: str) -> str:
        """import-from, dynamic import(), template literal, then any quoted string."""
        return self._until_stable(self._script_pass, text)

    def rewrite_stylesheet(self, text: str) -> str:
        return self._until_stable(self._stylesheet_pass, text)

    def rewrite_markup(self, text: str) -> str:
        return self._until_stable(self._markup_pass, text)

    # -- files -----------------------------------------------------------------

    def rewriter_for(self, name: str) -> Callable[[str], str] | None:
        lowered = name.lower()
        if lowered.endswith(SCRIPT_SUFFIXES):
            return self.rewrite_script
        if lowered.endswith(STYLESHEET_SUFFIXES):
            return self.rewrite_stylesheet
        return None

    def rewrite_resource(self, name: str, body: bytes) -> bytes:
        """Rewrite a script or stylesheet body; other files pass through unchanged.

        Raises :class:`RewriteFailure` when the body cannot be decoded or rewritten.
        """
        rewrite = self.rewriter_for(name)
        if rewrite is None:
            return body
        try:
            text = body.decode("utf-8")
            rewritten = rewrite(text)
        except ValueError as exc:
            raise RewriteFailure(name, str(exc)) from exc
        if rewritten != text:
            logger.debug("Rewrote paths in %s (%d -> %d chars)", name, len(text), len(rewritten))
        return rewritten.encode("utf-8")


def _hostname(host: str) -> str:
    """Lower-cased host without userinfo or port."""
    return host.lower().rsplit("@", 1)[-1].split(":", 1)[0]


def fix_hsl_variables(markup: str) -> str:
    """``rgb(var(--x))`` → ``hsl(var(--x))``: the custom properties hold HSL components."""
    return _RGB_VAR_RE.sub(r"hsl(var(--\1))", markup)
