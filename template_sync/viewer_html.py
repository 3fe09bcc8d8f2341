"""Viewer page served by the preview server.

Polls ``/latest`` and reloads ``/preview`` whenever the timestamp changes.
"""

VIEWER_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>Template Sync preview</title>
    <style>
      html, body { margin: 0; height: 100%; background: #525659; }
      #status {
        position: fixed; top: 0; right: 0; padding: 4px 10px;
        font: 12px sans-serif; color: #fff; background: rgba(0, 0, 0, 0.5);
      }
      #frame { border: 0; width: 100%; height: 100%; }
    </style>
  </head>
  <body>
    <div id="status">Waiting for first render&hellip;</div>
    <iframe id="frame" title="preview"></iframe>
    <script>
      const POLL_INTERVAL_MS = __POLL_INTERVAL_MS__;
      const frame = document.getElementById("frame");
      const status = document.getElementById("status");
      let lastSeen = undefined;
      let objectUrl = null;

      async function refresh() {
        const res = await fetch("/preview", { cache: "no-store" });
        if (!res.ok) return false;
        const blob = await res.blob();
        if (objectUrl) URL.revokeObjectURL(objectUrl);
        objectUrl = URL.createObjectURL(blob);
        frame.src = objectUrl;
        return true;
      }

      async function poll() {
        try {
          const res = await fetch("/latest", { cache: "no-store" });
          const { latest } = await res.json();
          if (latest !== null && latest !== lastSeen) {
            if (await refresh()) {
              lastSeen = latest;
              status.textContent = "Rendered " + new Date(latest).toLocaleTimeString();
            }
          }
        } catch (err) {
          status.textContent = "Preview server unreachable";
        }
      }

      poll();
      setInterval(poll, POLL_INTERVAL_MS);
    </script>
  </body>
</html>
"""


def render_viewer(poll_interval_ms: int = 1000) -> str:
    """Return the viewer page with the poll interval filled in."""
    return VIEWER_HTML.replace("__POLL_INTERVAL_MS__", str(int(poll_interval_ms)))
