class FrameCounter:
    """Measures the host frame rate from per-frame timestamps (milliseconds).

    current_fps is refreshed once at least a second has elapsed since the
    previous report; report_ready stays set until clear_report() is called.
    """

    REPORT_INTERVAL_MS = 1000.0

    def __init__(self):
        self.current_fps: int = 0
        self.report_ready: bool = False
        self._frame_count = 0
        self._last_report_time: float | None = None

    def tick(self, timestamp_ms: float) -> None:
        self._frame_count += 1
        if self._last_report_time is None:
            self._last_report_time = timestamp_ms

        elapsed = timestamp_ms - self._last_report_time
        if elapsed >= self.REPORT_INTERVAL_MS:
            self.current_fps = int(round(self._frame_count * 1000.0 / elapsed))
            self._frame_count = 0
            self._last_report_time = timestamp_ms
            self.report_ready = True

    def clear_report(self) -> None:
        self.report_ready = False
