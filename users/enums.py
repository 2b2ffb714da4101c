from enum import Enum


class UserRole(Enum):
    ADMIN = "admin"
    VENDOR = "vendor"
    CUSTOMER = "customer"

    @classmethod
    def choices(cls):
        return [(role.value, role.name.title()) for role in cls]


class Gender(Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"

    @classmethod
    def choices(cls):
        return [(gender.value, gender.name.title()) for gender in cls]
