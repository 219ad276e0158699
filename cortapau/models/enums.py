"""Enums for CortaPau - member values are the exact strings used on the wire."""
from enum import Enum


class SolicitationStatus(str, Enum):
    """The four states a solicitation can be in. No other states are allowed."""
    OPEN = "NOVA"
    IN_PROGRESS = "EM_ATENDIMENTO"
    RESOLVED = "CONCLUIDA"
    UNRESOLVED = "NAO_CONCLUIDA"


class Category(str, Enum):
    """Hazard category, fixed at creation."""
    ELECTRICAL_RISK = "RISCO_ELETRICO"
    FALL_RISK = "RISCO_QUEDAS"
    ROUTINE_PRUNING = "PODA_ROTINEIRA"
    OTHER = "OUTROS"


class RoutingTarget(str, Enum):
    """External responders a solicitation can be forwarded to."""
    CIVIL_DEFENSE = "DEFESA_CIVIL"
    FIRE_DEPARTMENT = "BOMBEIROS"
    POWER_COMPANY = "COMPANHIA_ENERGIA"
    OTHER = "OUTROS"


class AttendanceOutcome(str, Enum):
    """Outcome recorded by the field operator."""
    SUCCESS = "ATENDIDO_SUCESSO"
    NOT_ATTENDED = "NAO_ATENDIDO"
    ROUTED = "ENCAMINHADO"


class EventKind(str, Enum):
    """Kind of a history entry."""
    CREATION = "CRIACAO"
    STATUS_CHANGE = "STATUS_CHANGE"
    ROUTING = "ENCAMINHAMENTO"
    ATTENDANCE = "ATENDIMENTO"
    UPDATE = "ATUALIZACAO"


class Role(str, Enum):
    USER = "USER"
    OPERATOR = "OPERARIO"
    ADMIN = "ADMIN"
