"""
The contract format engines (HLS, DASH, MPEG-TS, WebTorrent) implement to claim
sources the media resource cannot play directly.
"""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .session import Session


@runtime_checkable
class Plugin(Protocol):
    """
    A format engine attached with `Session.use`.

    `init` is called once with the session. A plugin typically subscribes to the
    `load`, `quality-request` and `audio-track-request` channels there, merges
    `quality_levels` / `audio_tracks` into the state and reports failures with
    `session.trigger_error`. `destroy` releases whatever `init` acquired.
    """

    name: str

    def init(self, session: "Session") -> None: ...

    def destroy(self) -> None: ...
