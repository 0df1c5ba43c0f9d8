from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class EventKind(str, Enum):
    COMBINED_SNAPSHOT = "CombinedSnapshot"
    DELETE = "Delete"
    SCROLL_MESSAGE = "ScrollMessage"
    FORCE_MESSAGE = "ForceMessage"
    FINGERPRINT = "Fingerprint"
    USER_BLOCK = "UserBlock"
    ENTITLEMENT_USER_UPDATE = "EntitlementUserUpdate"
    ENTITLEMENT_PACKAGE_UPDATE = "EntitlementPackageUpdate"
    UNKNOWN = "Unknown"


SCOPE_GLOBAL = "GLOBAL"
SCOPE_PLAYER = "PLAYER"


@dataclass(frozen=True)
class ScrollRule:
    id: Optional[str]
    enabled: bool
    message: str
    interval_sec: Optional[float] = None
    duration_sec: Optional[float] = None
    repeat_count: Optional[int] = None
    scope: str = ""
    channel_targets: Tuple[str, ...] = ()
    updated_at: Optional[str] = None

    @property
    def is_global(self) -> bool:
        return self.scope.lower() != "player" and not self.channel_targets


@dataclass(frozen=True)
class ForceRule:
    id: Optional[str]
    enabled: bool
    title: str
    message: str
    scope: str = SCOPE_GLOBAL
    # Seconds; None means visible until replaced.
    duration: Optional[int] = None
    force_push: bool = False
    styling: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    updated_at: Optional[str] = None

    @property
    def key(self) -> str:
        return self.id or f"{self.title}|{self.message}"


@dataclass(frozen=True)
class FingerprintRule:
    id: Optional[str]
    enabled: bool
    display_name: str
    attributes: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class UserBlockEntry:
    username: str = ""
    customer_number: str = ""
    user_id: str = ""
    is_blocked: bool = False


@dataclass(frozen=True)
class SnapshotSettings:
    global_fingerprint_enabled: bool = True
    player_fingerprint_enabled: bool = True


@dataclass
class CombinedSnapshot:
    """
    One snapshot message. ``None`` means the array key was absent (no
    change); an empty list means it was present and empty (clear).
    """

    fingerprints: Optional[List[FingerprintRule]] = None
    scroll_messages: Optional[List[ScrollRule]] = None
    force_messages: Optional[List[ForceRule]] = None
    user_blocks: Optional[List[UserBlockEntry]] = None
    user_updates: Optional[List[Any]] = None
    package_ids: Optional[List[str]] = None
    settings: SnapshotSettings = field(default_factory=SnapshotSettings)
    type: Optional[str] = None

    def sections(self) -> List[EventKind]:
        present: List[EventKind] = []
        if self.fingerprints is not None:
            present.append(EventKind.FINGERPRINT)
        if self.scroll_messages is not None:
            present.append(EventKind.SCROLL_MESSAGE)
        if self.force_messages is not None:
            present.append(EventKind.FORCE_MESSAGE)
        if self.user_blocks is not None:
            present.append(EventKind.USER_BLOCK)
        if self.user_updates:
            present.append(EventKind.ENTITLEMENT_USER_UPDATE)
        if self.package_ids:
            present.append(EventKind.ENTITLEMENT_PACKAGE_UPDATE)
        return present


@dataclass(frozen=True)
class ToastNotice:
    text: str
    source_type: str


@dataclass(frozen=True)
class DeleteNotice:
    reason: str
    target_id: Optional[str] = None


EventPayload = Union[CombinedSnapshot, ToastNotice, DeleteNotice]


@dataclass(frozen=True)
class StreamEvent:
    kind: EventKind
    id: str
    payload: EventPayload
