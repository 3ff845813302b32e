from sqlalchemy import BigInteger, Integer

# Round ids and ticket numbers are 64-bit; SQLite's INTEGER is already 64-bit.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
