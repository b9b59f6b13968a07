class InFlightBudget:
    """Tracks bytes buffered by in-flight transfers against a high-water mark."""

    def __init__(self, max_bytes: int, high_water_ratio: float = 0.8) -> None:
        self._max_bytes = max_bytes
        self._high_water = int(max_bytes * high_water_ratio)
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def under_pressure(self) -> bool:
        return self._in_flight > self._high_water

    def reserve(self, size: int) -> None:
        self._in_flight += size

    def release(self, size: int) -> None:
        self._in_flight = max(self._in_flight - size, 0)
