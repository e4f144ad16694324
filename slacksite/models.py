"""Slack export records, database rows and search documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


def _get(data: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    """Fetch ``key`` from decoded JSON, treating absence and null as ``default``."""
    value = data.get(key)
    if value is None:
        return default
    if kind is int and isinstance(value, bool) or not isinstance(value, kind):
        raise TypeError(f"field {key!r}: expected {kind.__name__}, got {type(value).__name__}")
    return value


def _str(data: Mapping[str, Any], key: str) -> str:
    return _get(data, key, str, "")


def _int(data: Mapping[str, Any], key: str) -> int:
    return _get(data, key, int, 0)


def _bool(data: Mapping[str, Any], key: str) -> bool:
    return _get(data, key, bool, False)


def _obj(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    return _get(data, key, dict, {})


def _list(data: Mapping[str, Any], key: str) -> list:
    return _get(data, key, list, [])


def _str_list(data: Mapping[str, Any], key: str) -> list[str]:
    items = _list(data, key)
    for item in items:
        if not isinstance(item, str):
            raise TypeError(f"field {key!r}: expected list of str")
    return list(items)


@dataclass
class SlackTopic:
    value: str = ""
    creator: str = ""
    last_set: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SlackTopic:
        return cls(_str(data, "value"), _str(data, "creator"), _int(data, "last_set"))


@dataclass
class SlackPurpose:
    value: str = ""
    creator: str = ""
    last_set: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SlackPurpose:
        return cls(_str(data, "value"), _str(data, "creator"), _int(data, "last_set"))


@dataclass
class UserProfile:
    title: str = ""
    phone: str = ""
    real_name: str = ""
    real_name_normalized: str = ""
    display_name: str = ""
    display_name_normalized: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    image_original: str = ""
    image_24: str = ""
    image_32: str = ""
    image_48: str = ""
    image_72: str = ""
    image_192: str = ""
    image_512: str = ""
    team: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserProfile:
        names = cls.__dataclass_fields__
        return cls(**{name: _str(data, name) for name in names})


@dataclass
class User:
    id: str = ""
    team_id: str = ""
    name: str = ""
    deleted: bool = False
    profile: UserProfile = field(default_factory=UserProfile)
    is_bot: bool = False
    is_app_user: bool = False
    updated: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> User:
        return cls(
            id=_str(data, "id"),
            team_id=_str(data, "team_id"),
            name=_str(data, "name"),
            deleted=_bool(data, "deleted"),
            profile=UserProfile.from_dict(_obj(data, "profile")),
            is_bot=_bool(data, "is_bot"),
            is_app_user=_bool(data, "is_app_user"),
            updated=_int(data, "updated"),
        )


@dataclass
class Channel:
    id: str = ""
    name: str = ""
    created: int = 0
    creator: str = ""
    is_archived: bool = False
    is_general: bool = False
    members: list[str] = field(default_factory=list)
    topic: SlackTopic = field(default_factory=SlackTopic)
    purpose: SlackPurpose = field(default_factory=SlackPurpose)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Channel:
        return cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            created=_int(data, "created"),
            creator=_str(data, "creator"),
            is_archived=_bool(data, "is_archived"),
            is_general=_bool(data, "is_general"),
            members=_str_list(data, "members"),
            topic=SlackTopic.from_dict(_obj(data, "topic")),
            purpose=SlackPurpose.from_dict(_obj(data, "purpose")),
        )


@dataclass
class Group:
    id: str = ""
    name: str = ""
    created: int = 0
    creator: str = ""
    is_archived: bool = False
    members: list[str] = field(default_factory=list)
    topic: SlackTopic = field(default_factory=SlackTopic)
    purpose: SlackPurpose = field(default_factory=SlackPurpose)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Group:
        return cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            created=_int(data, "created"),
            creator=_str(data, "creator"),
            is_archived=_bool(data, "is_archived"),
            members=_str_list(data, "members"),
            topic=SlackTopic.from_dict(_obj(data, "topic")),
            purpose=SlackPurpose.from_dict(_obj(data, "purpose")),
        )


@dataclass
class DM:
    id: str = ""
    created: int = 0
    members: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DM:
        return cls(_str(data, "id"), _int(data, "created"), _str_list(data, "members"))


@dataclass
class MPIM:
    id: str = ""
    name: str = ""
    created: int = 0
    creator: str = ""
    is_archived: bool = False
    members: list[str] = field(default_factory=list)
    topic: SlackTopic = field(default_factory=SlackTopic)
    purpose: SlackPurpose = field(default_factory=SlackPurpose)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MPIM:
        return cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            created=_int(data, "created"),
            creator=_str(data, "creator"),
            is_archived=_bool(data, "is_archived"),
            members=_str_list(data, "members"),
            topic=SlackTopic.from_dict(_obj(data, "topic")),
            purpose=SlackPurpose.from_dict(_obj(data, "purpose")),
        )


@dataclass
class MessageUserProfile:
    """The author profile embedded in each exported message."""

    avatar_hash: str = ""
    image_72: str = ""
    first_name: str = ""
    real_name: str = ""
    display_name: str = ""
    team: str = ""
    name: str = ""
    is_restricted: bool = False
    is_ultra_restricted: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MessageUserProfile:
        return cls(
            avatar_hash=_str(data, "avatar_hash"),
            image_72=_str(data, "image_72"),
            first_name=_str(data, "first_name"),
            real_name=_str(data, "real_name"),
            display_name=_str(data, "display_name"),
            team=_str(data, "team"),
            name=_str(data, "name"),
            is_restricted=_bool(data, "is_restricted"),
            is_ultra_restricted=_bool(data, "is_ultra_restricted"),
        )


@dataclass
class MessageFile:
    """A file attached to a message."""

    id: str = ""
    created: int = 0
    name: str = ""
    title: str = ""
    mimetype: str = ""
    filetype: str = ""
    size: int = 0
    url_private: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MessageFile:
        return cls(
            id=_str(data, "id"),
            created=_int(data, "created"),
            name=_str(data, "name"),
            title=_str(data, "title"),
            mimetype=_str(data, "mimetype"),
            filetype=_str(data, "filetype"),
            size=_int(data, "size"),
            url_private=_str(data, "url_private"),
        )


@dataclass
class MessageAttachment:
    """An attachment on a message; only its text and pretext are kept."""

    text: str = ""
    pretext: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MessageAttachment:
        return cls(_str(data, "text"), _str(data, "pretext"))


@dataclass
class Message:
    """An exported message; ``blocks`` holds the raw Block Kit structures."""

    user: str = ""
    type: str = ""
    ts: str = ""
    client_msg_id: str = ""
    text: str = ""
    team: str = ""
    user_team: str = ""
    source_team: str = ""
    user_profile: MessageUserProfile | None = None
    blocks: list[Any] = field(default_factory=list)
    files: list[MessageFile] = field(default_factory=list)
    attachments: list[MessageAttachment] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        profile = data.get("user_profile")
        return cls(
            user=_str(data, "user"),
            type=_str(data, "type"),
            ts=_str(data, "ts"),
            client_msg_id=_str(data, "client_msg_id"),
            text=_str(data, "text"),
            team=_str(data, "team"),
            user_team=_str(data, "user_team"),
            source_team=_str(data, "source_team"),
            user_profile=None if profile is None else MessageUserProfile.from_dict(_obj(data, "user_profile")),
            blocks=list(_list(data, "blocks")),
            files=[MessageFile.from_dict(f) for f in _list(data, "files")],
            attachments=[MessageAttachment.from_dict(a) for a in _list(data, "attachments")],
        )


@dataclass
class MessageRow:
    """A row of the ``messages`` table."""

    conversation_id: str = ""
    conversation_type: str = ""
    user_id: str = ""
    type: str = ""
    ts: str = ""
    client_msg_id: str = ""
    text: str = ""
    user_profile_name: str = ""
    team: str = ""
    user_team: str = ""
    source_team: str = ""
    id: int | None = None


@dataclass
class SearchDocument:
    """A message document as stored in the search index."""

    id: str = ""
    conversation_id: str = ""
    user_id: str = ""
    ts: str = ""
    text: str = ""
    user_profile_name: str = ""
    team: str = ""

    def to_dict(self) -> dict[str, str]:
        """Return the indexed fields; the profile name is stored as ``name``."""
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "ts": self.ts,
            "text": self.text,
            "name": self.user_profile_name,
            "team": self.team,
        }