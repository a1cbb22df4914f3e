import enum


class ChatThreadStatus(str, enum.Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ChatMessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    LOCATION = "location"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    STAFF = "staff"
    CLIENT = "client"
