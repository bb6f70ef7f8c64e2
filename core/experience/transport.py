"""
Haptic Transport Layer - UDP Datagrams to the Vibration Device

This module handles best-effort delivery of control messages to one
external UDP endpoint. Haptic feedback is advisory: nothing here blocks
the tick thread and no error escapes to the sequencer.

Classes:
    HapticEmitter: Rate-limited, self-healing UDP emitter
    HapticTransportError: Base exception for transport failures
    HapticConnectionError: Socket could not be opened

Protocol (ASCII, one datagram per message, no acknowledgment):
    /start                                  once per start
    /end                                    once per stop, then a zero vibration
    /vibration {intensity:.2f} {frequency:.2f}   throttled to 1 per interval

Example:
    emitter = HapticEmitter(NetworkEndpoint("127.0.0.1", 8001), clock)
    emitter.send_start()
    emitter.update_from_phase(3, 0.5)
    emitter.flush()
    emitter.shutdown()
"""

from typing import Any, Callable, Dict, Optional, Tuple
import logging
import socket

from .types import (
    EmitterStats,
    HapticFrame,
    HapticMessageType,
    NetworkEndpoint,
    clamp01,
)
from .haptics import haptic_frame_for

logger = logging.getLogger(__name__)


class HapticTransportError(Exception):
    """Base exception for haptic transport errors."""
    pass


class HapticConnectionError(HapticTransportError):
    """Could not open the UDP socket."""
    pass


def _default_socket_factory() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    # Non-blocking: a full send buffer surfaces as BlockingIOError instead of a stall
    sock.setblocking(False)
    return sock


def format_vibration(intensity: float, frequency: float) -> str:
    return f"/vibration {intensity:.2f} {frequency:.2f}"


class HapticEmitter:
    """
    UDP emitter for start / end / vibration messages.

    Attributes:
        endpoint: Destination host/port (fixed)
        clock: Object with now() -> float
        send_interval: Minimum seconds between vibration datagrams
        intensity_multiplier: Applied after clamping, 0..2
        frequency_multiplier: Applied after clamping, 0..2
        enabled: False when the endpoint could not be resolved
    """

    DEFAULT_PORT = 8001
    DEFAULT_SEND_INTERVAL = 0.1
    MAX_MULTIPLIER = 2.0

    def __init__(
        self,
        endpoint: NetworkEndpoint,
        clock,
        send_interval: float = DEFAULT_SEND_INTERVAL,
        intensity_multiplier: float = 1.0,
        frequency_multiplier: float = 1.0,
        debug_log: bool = False,
        socket_factory: Optional[Callable[[], Any]] = None,
        resolve: bool = True,
    ):
        """
        Initialize the emitter. The socket is opened lazily on first send.

        Args:
            endpoint: UDP destination
            clock: Clock used for throttling
            send_interval: Vibration throttle interval in seconds
            intensity_multiplier: Scale applied to intensity after clamping
            frequency_multiplier: Scale applied to frequency after clamping
            debug_log: Log every datagram at INFO
            socket_factory: Override socket creation (tests)
            resolve: Resolve the host now; failure disables the emitter
        """
        self.endpoint = endpoint
        self.clock = clock
        self.send_interval = max(0.0, float(send_interval))
        self.intensity_multiplier = self._clamp_multiplier(intensity_multiplier)
        self.frequency_multiplier = self._clamp_multiplier(frequency_multiplier)
        self.debug_log = debug_log
        self._socket_factory = socket_factory or _default_socket_factory

        self._sock = None
        self._closed = False
        self._last_vibration_time: Optional[float] = None
        self._pending: Optional[Tuple[float, float]] = None
        self.last_frame: HapticFrame = HapticFrame.zero()
        self.stats = EmitterStats()

        self._sockaddr: Optional[Tuple[str, int]] = None
        self.enabled = True
        if resolve:
            self.enabled = self._resolve_endpoint()

    # ─────────────────────────────────────────────────────────
    # Socket lifecycle
    # ─────────────────────────────────────────────────────────

    @classmethod
    def _clamp_multiplier(cls, value: float) -> float:
        return max(0.0, min(cls.MAX_MULTIPLIER, float(value)))

    def _resolve_endpoint(self) -> bool:
        try:
            infos = socket.getaddrinfo(self.endpoint.host, self.endpoint.port, socket.AF_INET, socket.SOCK_DGRAM)
        except (socket.gaierror, UnicodeError) as e:
            logger.error(f"Haptic endpoint {self.endpoint} unresolvable, haptics disabled: {e}")
            return False
        if not infos:
            logger.error(f"Haptic endpoint {self.endpoint} resolved to no address, haptics disabled")
            return False
        # Resolved once; sends never go back to DNS
        self._sockaddr = infos[0][4]
        logger.debug(f"Haptic endpoint {self.endpoint} resolved to {self._sockaddr}")
        return True

    def _ensure_socket(self):
        if self._sock is None:
            try:
                self._sock = self._socket_factory()
            except OSError as e:
                raise HapticConnectionError(f"Failed to open UDP socket: {e}")
            logger.debug(f"Haptic socket opened for {self.endpoint}")
        return self._sock

    def _discard_socket(self) -> None:
        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.close()
            except OSError as e:
                logger.debug(f"Ignoring close error on discarded socket: {e}")

    def _send_datagram(self, data: bytes) -> None:
        sock = self._ensure_socket()
        try:
            sock.sendto(data, self._sockaddr or self.endpoint.address)
        except OSError as e:
            raise HapticTransportError(f"Send to {self.endpoint} failed: {e}")

    def _transmit(self, message: str, msg_type: HapticMessageType) -> bool:
        """
        Send one datagram with a single reopen-and-retry on failure.

        Returns:
            True if the datagram left the socket, False if dropped
        """
        if not self.enabled or self._closed:
            return False

        data = message.encode("ascii")
        for attempt in (1, 2):
            try:
                self._send_datagram(data)
            except HapticTransportError as e:
                self._discard_socket()
                self.stats.last_error = str(e)
                if attempt == 1:
                    self.stats.retries += 1
                    logger.warning(f"{e} - reopening socket and retrying once")
                    continue
                self.stats.dropped += 1
                logger.error(f"Dropping '{message}': {e}")
                return False

            self.stats.sent += 1
            self.stats.last_message = message
            key = msg_type.value
            self.stats.by_type[key] = self.stats.by_type.get(key, 0) + 1
            if self.debug_log:
                logger.info(f"UDP -> {self.endpoint}: {message}")
            return True
        return False

    # ─────────────────────────────────────────────────────────
    # Messages
    # ─────────────────────────────────────────────────────────

    def send_start(self) -> bool:
        """Send /start immediately (not throttled)."""
        return self._transmit("/start", HapticMessageType.START)

    def send_end(self) -> bool:
        """Send /end followed by a forced zero vibration frame."""
        self._pending = None
        sent = self._transmit("/end", HapticMessageType.END)
        self.send_vibration(0.0, 0.0, force=True)
        return sent

    def send_vibration(self, intensity: float, frequency: float, force: bool = False) -> bool:
        """
        Send a vibration frame, subject to the throttle.

        Values are clamped to [0, 1] and then scaled by the multipliers.
        Inside the throttle window the frame is kept as pending and goes
        out on the next flush().

        Returns:
            True if a datagram was sent now
        """
        scaled = (
            clamp01(float(intensity)) * self.intensity_multiplier,
            clamp01(float(frequency)) * self.frequency_multiplier,
        )
        now = self.clock.now()
        if not force and not self._interval_elapsed(now):
            self._pending = scaled
            self.stats.throttled += 1
            return False
        return self._send_scaled(scaled, now)

    def _interval_elapsed(self, now: float) -> bool:
        if self._last_vibration_time is None:
            return True
        return now - self._last_vibration_time >= self.send_interval

    def _send_scaled(self, scaled: Tuple[float, float], now: float) -> bool:
        self._pending = None
        self._last_vibration_time = now
        return self._transmit(format_vibration(*scaled), HapticMessageType.VIBRATION)

    def flush(self, now: Optional[float] = None) -> bool:
        """Send the pending frame once the throttle interval has passed."""
        if self._pending is None:
            return False
        if now is None:
            now = self.clock.now()
        if not self._interval_elapsed(now):
            return False
        return self._send_scaled(self._pending, now)

    def update_from_phase(self, phase: int, progress: float) -> bool:
        """Haptic path of the sequencer: compute the frame for (phase, progress) and send it."""
        frame = haptic_frame_for(phase, progress, self.clock.now())
        self.last_frame = frame
        return self.send_vibration(frame.intensity, frame.frequency)

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    # ─────────────────────────────────────────────────────────
    # Shutdown / status
    # ─────────────────────────────────────────────────────────

    def shutdown(self) -> None:
        """Send a zero vibration frame and close the socket. Idempotent."""
        if self._closed:
            return
        self._pending = None
        self.send_vibration(0.0, 0.0, force=True)
        self._discard_socket()
        self._closed = True
        logger.info(f"Haptic emitter for {self.endpoint} shut down")

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats.update({
            "endpoint": str(self.endpoint),
            "resolved": f"{self._sockaddr[0]}:{self._sockaddr[1]}" if self._sockaddr else None,
            "enabled": self.enabled,
            "closed": self._closed,
            "pending": self._pending is not None,
            "send_interval": self.send_interval,
            "last_frame": self.last_frame.to_dict(),
        })
        return stats


def create_emitter(
    host: str = "127.0.0.1",
    port: int = HapticEmitter.DEFAULT_PORT,
    clock=None,
    **kwargs: Any
) -> HapticEmitter:
    """
    Create a haptic emitter.

    An invalid host/port is a configuration error: it is logged and a
    disabled emitter is returned so the experience still runs.
    """
    if clock is None:
        from .clock import MonotonicClock
        clock = MonotonicClock()
    try:
        endpoint = NetworkEndpoint(host, int(port))
    except (TypeError, ValueError) as e:
        logger.error(f"Invalid haptic endpoint {host!r}:{port!r}, haptics disabled: {e}")
        emitter = HapticEmitter(NetworkEndpoint(), clock, resolve=False, **kwargs)
        emitter.enabled = False
        return emitter
    return HapticEmitter(endpoint, clock, **kwargs)
