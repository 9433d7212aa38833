"""Exception taxonomy for the companion client.

Transport errors are recovered by the event channel's reconnect loop;
decode and playback errors stay local to one audio event; permission and
explicit peripheral connect errors are raised to the caller because they
need user action.
"""


class GlassLinkError(Exception):
    """Base class for all companion client errors."""


class PermissionDenied(GlassLinkError):
    """Peripheral access has not been granted by the host platform."""


class TransportError(GlassLinkError):
    """Event stream I/O or handshake failure."""


class PeripheralConnectionError(GlassLinkError):
    """Connecting to the wireless peripheral failed."""


class PeripheralBusy(GlassLinkError):
    """The peripheral link cannot accept the request in its current state."""


class DecodeError(GlassLinkError):
    """An inbound payload could not be decoded."""


class PlaybackError(GlassLinkError):
    """Local playback could not load or start an audio resource."""


class NotConnected(GlassLinkError):
    """A write was attempted without an active peripheral."""
