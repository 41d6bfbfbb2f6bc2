"""Constants for the cross-context relay."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Message contract
# ---------------------------------------------------------------------------

#: The only action the privileged and page contexts accept.  Changing it
#: breaks every context that speaks the relay contract.
FETCH_MEDIA_ACTION: str = "fetchMedia"

#: Channel names, used in logs and in combined failure reasons.
PRIVILEGED_CONTEXT: str = "privileged"
PAGE_CONTEXT: str = "page_context"

#: ``errorKind`` values of a failed ``fetchMedia`` reply.
ERROR_KIND_NETWORK: str = "network"
ERROR_KIND_UNREACHABLE: str = "unreachable"

# ---------------------------------------------------------------------------
# Fetch timing
# ---------------------------------------------------------------------------

#: Default per-attempt relay timeout in seconds.
DEFAULT_RELAY_TIMEOUT: float = 15.0

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: ``Accept`` header sent when downloading media.
MEDIA_ACCEPT: str = "image/avif,image/webp,image/apng,image/*,video/*,*/*;q=0.8"

#: Content-Type prefixes that indicate the server answered with a page rather
#: than media (typical for anti-hotlinking redirects to a login or error page).
NON_MEDIA_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "text/html",
        "application/xhtml+xml",
    }
)

# ---------------------------------------------------------------------------
# Page-context fetch
# ---------------------------------------------------------------------------

#: Script evaluated inside the origin tab.  Runs with the tab's cookies and
#: referrer and returns the body base64-encoded so it survives serialisation.
PAGE_FETCH_SCRIPT: str = """
async ([url, accept]) => {
  const res = await fetch(url, {
    credentials: 'include',
    headers: { 'Accept': accept },
  });
  if (!res.ok) {
    return { ok: false, status: res.status, body: null };
  }
  const buf = new Uint8Array(await res.arrayBuffer());
  let binary = '';
  const chunk = 0x8000;
  for (let i = 0; i < buf.length; i += chunk) {
    binary += String.fromCharCode.apply(null, buf.subarray(i, i + chunk));
  }
  return { ok: true, status: res.status, body: btoa(binary) };
}
"""

#: Fragments of Playwright error messages that mean the tab itself is gone.
PAGE_GONE_MARKERS: tuple[str, ...] = (
    "Target closed",
    "Target page, context or browser has been closed",
    "has been closed",
    "Execution context was destroyed",
)
