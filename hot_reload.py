"""Browser hot-reload channel.

Every server instance gets a random token at construction. The reload
worker is served at ``/hot-reload-<token>.js`` so a restarted server never
hands out a cached worker. HTML pages get a bootstrap ``<script>`` that
attaches to the worker; the worker keeps one EventSource connection to the
external reload service and relays its messages to every open tab.
"""

from __future__ import annotations

import secrets

from config import DEV_HOT_RELOAD, RELOAD_EVENTS_URL

HEAD_CLOSE_TAG = b"</head>"

WORKER_TEMPLATE = """onconnect = (e) => {{
    const port = e.ports[0];
    const evtSource = new EventSource({events_url});
    evtSource.addEventListener('message', (e) => {{
        port.postMessage(e.data);
    }});
    port.start();
}};
"""

BOOTSTRAP_TEMPLATE = """<script>
    try {{
        const reloadWorker = new SharedWorker("{script_name}", {{
            name: 'reload-worker',
        }});
        reloadWorker.port.start();
        reloadWorker.port.onmessage = (e) => {{
            if (e.data === 'reload') {{
                window.location.reload();
            }}
        }};
    }} catch (err) {{
        console.error('Hot reload worker failed to start:', err);
    }}
</script>"""


class HotReloadChannel:
    def __init__(
        self,
        enabled: bool = DEV_HOT_RELOAD,
        *,
        events_url: str = RELOAD_EVENTS_URL,
        token: str | None = None,
    ) -> None:
        self.enabled = enabled
        self.events_url = events_url
        self.token = token or secrets.token_hex(4)
        self.script_name = f"hot-reload-{self.token}.js"

    @property
    def worker_script(self) -> str:
        return WORKER_TEMPLATE.format(events_url=_js_string(self.events_url))

    @property
    def bootstrap_script(self) -> str:
        return BOOTSTRAP_TEMPLATE.format(script_name=self.script_name)

    def is_worker_request(self, request_path: str) -> bool:
        return self.enabled and request_path.removeprefix("/") == self.script_name

    def inject(self, html: bytes) -> bytes:
        """Insert the bootstrap script before the first ``</head>``."""
        if not self.enabled or HEAD_CLOSE_TAG not in html:
            return html
        snippet = self.bootstrap_script.encode("utf-8")
        return html.replace(HEAD_CLOSE_TAG, snippet + HEAD_CLOSE_TAG, 1)


def _js_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"
