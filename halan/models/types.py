from sqlalchemy import String, TypeDecorator


class EnumValue(TypeDecorator):
    """Store a str Enum by its value (e.g. "in_transit") rather than its name"""
    impl = String
    cache_ok = True

    def __init__(self, enum_cls, length: int = 32):
        super().__init__(length)
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, self.enum_cls):
            return value.value
        return self.enum_cls(str(value).lower()).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls(str(value).lower())
