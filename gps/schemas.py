import json
from dataclasses import asdict, dataclass
from enum import IntEnum


class Mode(IntEnum):
    UNKNOWN = 0
    NO_FIX = 1
    D2_FIX = 2
    D3_FIX = 3

    def __str__(self) -> str:
        return self.name


def _filter(cls, data: dict) -> dict:
    return {k: v for k, v in data.items() if k in cls.__annotations__}


@dataclass
class Watch:
    enable: bool | None = True
    json: bool | None = True
    nmea: bool | None = False
    raw: int | None = None
    scaled: bool | None = False
    split24: bool | None = False
    pps: bool | None = False
    device: str = ""
    remote: str = ""

    def to_json(self) -> str:
        data = {k: v for k, v in asdict(self).items() if v not in (None, "")}
        return json.dumps(data, separators=(",", ":"))

    @staticmethod
    def from_json(data: dict) -> "Watch":
        return Watch(**_filter(Watch, data))


@dataclass
class Version:
    release: str
    rev: str
    proto_major: int
    proto_minor: int
    remote: str | None = None

    @property
    def proto(self) -> tuple[int, int]:
        return self.proto_major, self.proto_minor

    @staticmethod
    def from_json(data: dict) -> "Version":
        return Version(**_filter(Version, data))


@dataclass
class Device:
    path: str | None = None
    activated: str | None = None
    driver: str | None = None
    subtype: str | None = None
    bps: int | None = None
    cycle: float | None = None

    @staticmethod
    def from_json(data: dict) -> "Device":
        return Device(**_filter(Device, data))


@dataclass
class Devices:
    devices: list[Device]
    remote: str | None = None

    @staticmethod
    def from_json(data: dict) -> "Devices":
        devices = [Device.from_json(device) for device in data.get("devices", [])]
        return Devices(devices=devices, remote=data.get("remote"))


@dataclass
class TPV:
    device: str | None = None
    mode: Mode = Mode.UNKNOWN
    time: str | None = None
    lat: float | None = None
    lon: float | None = None
    alt: float | None = None  # Deprecated
    altHAE: float | None = None
    altMSL: float | None = None
    eph: float | None = None
    epx: float | None = None
    epy: float | None = None
    epv: float | None = None
    speed: float | None = None
    track: float | None = None
    climb: float | None = None

    @property
    def has_fix(self) -> bool:
        return (
            self.mode >= Mode.D2_FIX and self.lat is not None and self.lon is not None
        )

    @property
    def altitude(self) -> float | None:
        for value in (self.altMSL, self.alt, self.altHAE):
            if value is not None:
                return value
        return None

    @property
    def horizontal_error(self) -> float | None:
        if self.eph is not None:
            return self.eph
        errors = [e for e in (self.epx, self.epy) if e is not None]
        return max(errors) if errors else None

    @staticmethod
    def from_json(data: dict) -> "TPV":
        filtered_data = _filter(TPV, data)
        filtered_data["mode"] = Mode(filtered_data.get("mode", Mode.UNKNOWN))
        return TPV(**filtered_data)


@dataclass
class Sky:
    device: str | None = None
    time: str | None = None
    nSat: int | None = None
    uSat: int | None = None
    hdop: float | None = None
    vdop: float | None = None

    @staticmethod
    def from_json(data: dict) -> "Sky":
        return Sky(**_filter(Sky, data))


@dataclass
class Error:
    message: str

    def __str__(self) -> str:
        return self.message

    @staticmethod
    def from_json(data: dict) -> "Error":
        return Error(**_filter(Error, data))
