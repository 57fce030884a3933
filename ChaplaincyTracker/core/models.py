"""Entity definitions for the activity collections.

Every record is a dataclass with snake_case attributes. The JSON form used by
the local store and the remote endpoint keeps the camelCase keys of the
spreadsheet contract; each field carries its wire key in ``metadata['key']``.

Enum values are written with their English names. The Portuguese labels found
in older spreadsheets are accepted when reading.
"""
import datetime
import enum
import logging
import re
import uuid
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Type, TypeVar

from ..status import status

R = TypeVar('R', bound='Record')


class AliasedEnum(enum.StrEnum):
    """String enum that also resolves case-insensitive names and legacy labels."""

    @classmethod
    def aliases(cls) -> Dict[str, str]:
        return {}

    @classmethod
    def _missing_(cls, value: Any):
        if not isinstance(value, str):
            return None
        key = value.strip().casefold()
        for member in cls:
            if member.value.casefold() == key:
                return member
        for alias, name in cls.aliases().items():
            if alias.casefold() == key:
                return cls(name)
        return None


class Role(AliasedEnum):
    ADMIN = 'ADMIN'
    CHAPLAIN = 'CHAPLAIN'
    ASSISTANT = 'ASSISTANT'


class StudyStatus(AliasedEnum):
    Start = 'Start'
    Continuation = 'Continuation'
    Completion = 'Completion'

    @classmethod
    def aliases(cls) -> Dict[str, str]:
        return {
            'Início da série': 'Start',
            'Continuidade da série': 'Continuation',
            'Término da série': 'Completion',
        }


class Shift(AliasedEnum):
    Morning = 'Morning'
    Afternoon = 'Afternoon'
    Evening = 'Evening'

    @classmethod
    def aliases(cls) -> Dict[str, str]:
        return {
            'Manhã': 'Morning',
            'Tarde': 'Afternoon',
            'Noite': 'Evening',
        }


class HospitalUnit(AliasedEnum):
    HAB = 'HAB'
    HABA = 'HABA'


class RequestType(AliasedEnum):
    EDIT = 'EDIT'
    DELETE = 'DELETE'


class RequestModule(AliasedEnum):
    STUDY = 'STUDY'
    CLASS = 'CLASS'
    PG = 'PG'
    VISIT = 'VISIT'


class RequestStatus(AliasedEnum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


def new_id() -> str:
    """Return a fresh opaque record id."""
    return uuid.uuid4().hex


def now_str() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def parse_date(value: str) -> datetime.date:
    """Parse the calendar date of an ISO date or timestamp string.

    Args:
        value: ``YYYY-MM-DD`` or a full ISO timestamp.

    Raises:
        status.ValidationException: If the value is not a valid ISO date.
    """
    if not isinstance(value, str) or len(value) < 10:
        raise status.ValidationException(f'Invalid date "{value}".', field='date')
    try:
        return datetime.date.fromisoformat(value[:10])
    except ValueError as ex:
        raise status.ValidationException(f'Invalid date "{value}".', field='date') from ex


def phone_digits(value: str) -> str:
    """Strip everything but digits from a contact number."""
    return re.sub(r'\D', '', value or '')


# Wire value converters. Each raises ValidationException on values it cannot represent.

def _to_str(value: Any, name: str) -> str:
    if value is None:
        return ''
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise status.ValidationException(f'Field "{name}" must be a string, got {type(value).__name__}.', field=name)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _to_optional_str(value: Any, name: str) -> Optional[str]:
    if value is None or value == '':
        return None
    return _to_str(value, name)


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise status.ValidationException(f'Field "{name}" must be an integer, got bool.', field=name)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    raise status.ValidationException(f'Field "{name}" must be an integer, got "{value}".', field=name)


def _to_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if value is None or value == '':
        return False
    if isinstance(value, str) and value.strip().lower() in ('true', 'false', 'sim', 'não', 'nao', '1', '0'):
        return value.strip().lower() in ('true', 'sim', '1')
    if isinstance(value, int):
        return bool(value)
    raise status.ValidationException(f'Field "{name}" must be a boolean, got "{value}".', field=name)


def _to_str_list(value: Any, name: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise status.ValidationException(f'Field "{name}" must be a list, got {type(value).__name__}.', field=name)
    return [_to_str(v, name) for v in value]


def _to_dict(value: Any, name: str) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise status.ValidationException(f'Field "{name}" must be an object, got {type(value).__name__}.', field=name)
    return dict(value)


def _enum(enum_cls: Type[enum.Enum]):
    def convert(value: Any, name: str):
        try:
            return enum_cls(value)
        except ValueError as ex:
            raise status.ValidationException(
                f'Field "{name}" must be one of {[m.value for m in enum_cls]}, got "{value}".', field=name
            ) from ex

    return convert


def wire(key: str, convert=_to_str, **kwargs) -> Any:
    """Declare a dataclass field with its wire key and value converter."""
    return field(metadata={'key': key, 'convert': convert}, **kwargs)


@dataclass
class Record:
    """Base for every stored entity."""
    id: str = wire('id', default='')

    @classmethod
    def from_dict(cls: Type[R], data: Dict[str, Any]) -> R:
        """Build a record from its JSON representation.

        Unknown keys are ignored and absent keys keep their defaults.

        Raises:
            status.ValidationException: If ``data`` is not an object or a value has the wrong type.
        """
        if not isinstance(data, dict):
            raise status.ValidationException(
                f'{cls.__name__} must be an object, got {type(data).__name__}.'
            )
        kwargs = {}
        for f in fields(cls):
            key = f.metadata.get('key', f.name)
            if key not in data:
                continue
            convert = f.metadata.get('convert', _to_str)
            kwargs[f.name] = convert(data[key], key)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON representation, omitting unset optional values."""
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, enum.Enum):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            result[f.metadata.get('key', f.name)] = value
        return result

    def validate(self) -> None:
        """Raise ValidationException when the record cannot be stored."""
        pass


def _require(record: Record, *names: str) -> None:
    for name in names:
        value = getattr(record, name)
        if not isinstance(value, str) or not value.strip():
            raise status.ValidationException(
                f'{type(record).__name__} requires "{name}".', field=name
            )


@dataclass
class User(Record):
    name: str = wire('name', default='')
    email: str = wire('email', default='')
    password: Optional[str] = wire('password', _to_optional_str, default=None)
    role: Role = wire('role', _enum(Role), default=Role.CHAPLAIN)
    photo_url: Optional[str] = wire('photoUrl', _to_optional_str, default=None)

    def validate(self) -> None:
        _require(self, 'name', 'email')
        if '@' not in self.email:
            raise status.ValidationException(f'Invalid email "{self.email}".', field='email')

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass
class Activity(Record):
    """Fields shared by every dated activity record."""
    date: str = wire('date', default='')
    year: int = wire('year', _to_int, default=0)
    month: int = wire('month', _to_int, default=0)
    sector: str = wire('sector', default='')
    hospital_unit: HospitalUnit = wire('hospitalUnit', _enum(HospitalUnit), default=HospitalUnit.HAB)
    observations: str = wire('observations', default='')
    chaplain_id: str = wire('chaplainId', default='')
    created_at: str = wire('createdAt', default='')

    def derive_period(self) -> None:
        """Set ``year`` and ``month`` from ``date``."""
        d = parse_date(self.date)
        self.year = d.year
        self.month = d.month

    def validate(self) -> None:
        _require(self, 'date')
        parse_date(self.date)


@dataclass
class BibleStudy(Activity):
    patient_name: str = wire('patientName', default='')
    whatsapp: str = wire('whatsapp', default='')
    status: StudyStatus = wire('status', _enum(StudyStatus), default=StudyStatus.Start)
    study_series: str = wire('studySeries', default='')
    current_lesson: str = wire('currentLesson', default='')

    def validate(self) -> None:
        super().validate()
        _require(self, 'sector', 'patient_name')
        if self.whatsapp:
            digits = phone_digits(self.whatsapp)
            if len(digits) not in (10, 11):
                raise status.ValidationException(
                    f'Malformed contact number "{self.whatsapp}".', field='whatsapp'
                )


@dataclass
class BibleClass(Activity):
    students: List[str] = wire('students', _to_str_list, default_factory=list)
    study_series: str = wire('studySeries', default='')
    current_lesson: str = wire('currentLesson', default='')

    def validate(self) -> None:
        super().validate()
        _require(self, 'sector')
        if not [s for s in self.students if s.strip()]:
            raise status.ValidationException('A bible class needs at least one student.', field='students')


@dataclass
class SmallGroup(Activity):
    name: str = wire('name', default='')
    leader: str = wire('leader', default='')
    shift: Shift = wire('shift', _enum(Shift), default=Shift.Morning)
    participants_count: int = wire('participantsCount', _to_int, default=1)

    def validate(self) -> None:
        super().validate()
        _require(self, 'sector', 'name')
        if self.participants_count < 1:
            raise status.ValidationException(
                f'Participant count must be at least 1, got {self.participants_count}.',
                field='participantsCount'
            )


@dataclass
class StaffVisit(Activity):
    staff_name: str = wire('staffName', default='')
    reason: str = wire('reason', default='')
    other_reason: Optional[str] = wire('otherReason', _to_optional_str, default=None)
    needs_follow_up: bool = wire('needsFollowUp', _to_bool, default=False)

    def validate(self) -> None:
        super().validate()
        _require(self, 'staff_name')


@dataclass
class CloudConfig(Record):
    """Tenant configuration. Stored as a single object, so ``id`` stays empty."""
    database_url: str = wire('databaseURL', default='')
    spreadsheet_id: str = wire('spreadsheetId', default='')
    app_logo: Optional[str] = wire('appLogo', _to_optional_str, default=None)
    report_logo: Optional[str] = wire('reportLogo', _to_optional_str, default=None)
    custom_sectors_hab: List[str] = wire('customSectorsHAB', _to_str_list, default_factory=list)
    custom_sectors_haba: List[str] = wire('customSectorsHABA', _to_str_list, default_factory=list)
    custom_pgs_hab: List[str] = wire('customPGsHAB', _to_str_list, default_factory=list)
    custom_pgs_haba: List[str] = wire('customPGsHABA', _to_str_list, default_factory=list)
    custom_collaborators: List[str] = wire('customCollaborators', _to_str_list, default_factory=list)
    report_title: str = wire('reportTitle', default='')
    report_subtitle: str = wire('reportSubtitle', default='')
    general_message: Optional[str] = wire('generalMessage', _to_optional_str, default=None)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.pop('id', None)
        return data


@dataclass
class ChangeRequest(Record):
    record_id: str = wire('recordId', default='')
    type: RequestType = wire('type', _enum(RequestType), default=RequestType.EDIT)
    module: RequestModule = wire('module', _enum(RequestModule), default=RequestModule.STUDY)
    status: RequestStatus = wire('status', _enum(RequestStatus), default=RequestStatus.PENDING)
    requested_by: str = wire('requestedBy', default='')
    requested_by_name: str = wire('requestedByName', default='')
    requested_at: str = wire('requestedAt', default='')
    reason: Optional[str] = wire('reason', _to_optional_str, default=None)
    new_data: Optional[Dict[str, Any]] = wire('newData', _to_dict, default=None)

    def validate(self) -> None:
        _require(self, 'record_id', 'requested_by')
        if self.type == RequestType.EDIT and not self.new_data:
            raise status.ValidationException('An edit request must carry the new record.', field='newData')


def load_list(cls: Type[R], items: Any) -> List[R]:
    """Convert a JSON array into records of ``cls``.

    Raises:
        status.ValidationException: If ``items`` is not a list or an item cannot be converted.
    """
    if not isinstance(items, list):
        raise status.ValidationException(f'Expected a list of {cls.__name__}, got {type(items).__name__}.')
    records = [cls.from_dict(item) for item in items]
    logging.debug(f'Loaded {len(records)} {cls.__name__} record(s).')
    return records
