from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.types import TypeDecorator

# Use BigInteger by default, with a SQLite-safe Integer variant for autoincrement PKs.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class UInt256(TypeDecorator):
    """Unsigned 256-bit integer stored as a decimal string.

    Wei amounts and block entropy overflow 64-bit columns, and SQLite would
    silently coerce large NUMERIC values to floating point.
    """

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError("UInt256 columns only accept integers")
        if value < 0 or value >= 1 << 256:
            raise ValueError("UInt256 value out of range")
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)
