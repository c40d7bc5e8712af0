"""Centralized enums for type safety and IDE support."""

from enum import StrEnum


class AccelerationMode(StrEnum):
    """Encoder pipeline used by a stream session."""

    SOFTWARE = "software"
    VAAPI = "vaapi"
    QUICKSYNC = "quicksync"
    NVENC = "nvenc"
    AMF = "amf"

    @classmethod
    def parse(cls, value: str | None) -> "AccelerationMode":
        """Return the matching mode, or SOFTWARE for unset/unknown values."""
        if not value:
            return cls.SOFTWARE
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.SOFTWARE


class StreamType(StrEnum):
    """NVR stream variants exposed per channel."""

    MAINSTREAM = "mainstream"
    SUBSTREAM = "substream"
    THIRDSTREAM = "thirdstream"


class SessionState(StrEnum):
    """Stream session lifecycle states."""

    PENDING = "pending"
    ACTIVE = "active"
    STOPPED = "stopped"


class AudioCodec(StrEnum):
    """Audio codecs a viewer may request."""

    OPUS = "opus"
    AAC_ELD = "aac-eld"
    PCMU = "pcmu"
    PCMA = "pcma"
    AAC_LC = "aac-lc"
    MSBC = "msbc"
    AMR = "amr"
    AMR_WB = "amr-wb"
