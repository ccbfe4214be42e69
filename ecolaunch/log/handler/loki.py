import sys
import socket
import logging
import requests
import threading
from typing import Any, Dict, List, Optional


class LokiHandler(logging.Handler):
    """
    A logging handler that pushes records to a Grafana Loki instance
    in batches from a background thread.
    """
    def __init__(self, url: str, org_id: Optional[str] = None, flush_interval: float = 5,
                 batch_size: int = 200, job: str = "ecolaunch"):
        """
        Initializes the Loki handler.

        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID for Loki ('X-Scope-OrgID'), if any.
        :param flush_interval: Seconds between periodic flushes.
        :param batch_size: Buffered record count that triggers an early flush.
        :param job: The 'job' stream label.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.flush_interval = flush_interval
        self.batch_size = batch_size
        self.job = job
        self.hostname = socket.gethostname()
        self.log_buffer: List[Dict[str, Any]] = []
        self.buffer_lock = threading.Lock()

        self.stop_event = threading.Event()
        self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True, name="LokiFlushThread")
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def build_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        """Turns a record into one Loki stream entry."""
        return {
            "stream": {
                "job": self.job,
                "level": record.levelname.lower(),
                "hostname": self.hostname,
                "logger": record.name,
            },
            "values": [[str(int(record.created * 1e9)), self.format(record)]],
        }

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = self.build_entry(record)
        except Exception:
            self.handleError(record)
            return
        with self.buffer_lock:
            self.log_buffer.append(entry)
            should_flush = len(self.log_buffer) >= self.batch_size
        if should_flush:
            self.flush()

    def flush(self) -> None:
        """Sends the buffered entries to Loki."""
        with self.buffer_lock:
            entries, self.log_buffer = self.log_buffer, []
        if not entries:
            return

        headers = {'Content-Type': 'application/json'}
        if self.org_id:
            headers['X-Scope-OrgID'] = self.org_id
        try:
            response = requests.post(self.url, json={"streams": entries}, headers=headers, timeout=5)
            # 204 No Content is the success status for Loki push
            if response.status_code != 204:
                print(f"ERROR: Loki returned status {response.status_code}: {response.text}", file=sys.stderr)
        except requests.RequestException as e:
            print(f"CRITICAL: Failed to send {len(entries)} logs to Loki: {e}", file=sys.stderr)

    def close(self) -> None:
        """Stops the flush thread after a final flush."""
        self.stop_event.set()
        if self.flush_thread.is_alive():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        super().close()
