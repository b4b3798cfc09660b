from enum import Enum

class UserType(str, Enum):
    TRAINER = "trainer"
    CLIENT = "client"


class ResolvedRole(str, Enum):
    TRAINER = "trainer"
    CLIENT = "client"
    UNKNOWN = "unknown"


class SenderType(str, Enum):
    TRAINER = "trainer"
    CLIENT = "client"


class ChangeEvent(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
