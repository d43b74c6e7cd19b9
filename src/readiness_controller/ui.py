"""Status page and metrics endpoint."""

from __future__ import annotations

import html

from readiness_controller.httpserver import DrainingHTTPServer, QuietHandler
from readiness_controller.metrics import CONTENT_TYPE_LATEST, ProbeMetrics
from readiness_controller.state import GateStatus, StateStore

_PAGE_HEAD = """<!DOCTYPE html>
<html>
<head>
<title>Readiness Controller</title>
<meta http-equiv="refresh" content="5">
<style>
body { font-family: sans-serif; padding: 20px; background-color: #f4f4f4; }
h1 { text-align: center; color: #333; }
table { border-collapse: collapse; margin: 0 auto; background: white; }
th, td { padding: 8px 14px; border-bottom: 1px solid #ddd; text-align: left; font-size: 14px; }
.badge { padding: 3px 8px; border-radius: 4px; font-weight: bold; color: white; }
.green { background-color: #2ecc71; }
.red { background-color: #e74c3c; }
code { background: #eee; padding: 2px 4px; border-radius: 3px; }
</style>
</head>
<body>
<h1>Active Gates</h1>
"""


def _row(status: GateStatus) -> str:
    badge = '<span class="badge green">HEALTHY</span>' if status.healthy else '<span class="badge red">FAILING</span>'
    return (
        "<tr>"
        f"<td><strong>{html.escape(status.name)}</strong></td>"
        f"<td>{badge}</td>"
        f"<td><code>{html.escape(status.target)}</code> ({html.escape(status.check_type)})</td>"
        f"<td>{status.last_check.strftime('%H:%M:%S')}</td>"
        f"<td>{status.duration_s * 1000:.0f} ms</td>"
        f"<td>{html.escape(status.message)}</td>"
        f"<td>{html.escape(status.phase)}</td>"
        "</tr>"
    )


def render_status_page(statuses: list[GateStatus]) -> str:
    lines = [_PAGE_HEAD]
    if not statuses:
        lines.append("<p>No gates reported yet.</p>")
    else:
        lines.append("<table>")
        lines.append(
            "<tr><th>Gate</th><th>State</th><th>Target</th><th>Last Check</th>"
            "<th>Duration</th><th>Status</th><th>Phase</th></tr>"
        )
        lines.extend(_row(status) for status in statuses)
        lines.append("</table>")
    lines.append("</body>\n</html>\n")
    return "\n".join(lines)


def make_status_server(store: StateStore, port: int, host: str = "") -> DrainingHTTPServer:
    class StatusHandler(QuietHandler):
        def do_GET(self) -> None:
            if self.path.split("?", 1)[0] not in ("/", "/index.html"):
                self.send_body(404, b"not found\n", "text/plain; charset=utf-8")
                return
            body = render_status_page(store.snapshot()).encode("utf-8")
            self.send_body(200, body, "text/html; charset=utf-8")

    return DrainingHTTPServer((host, port), StatusHandler)


def make_metrics_server(metrics: ProbeMetrics, port: int, host: str = "") -> DrainingHTTPServer:
    class MetricsHandler(QuietHandler):
        def do_GET(self) -> None:
            if self.path.split("?", 1)[0] != "/metrics":
                self.send_body(404, b"not found\n", "text/plain; charset=utf-8")
                return
            self.send_body(200, metrics.render(), CONTENT_TYPE_LATEST)

    return DrainingHTTPServer((host, port), MetricsHandler)
