"""
数据库模型基类（SQLAlchemy 2.0 风格）
"""
from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase


# 约束命名规则，保证迁移脚本中的约束名稳定
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# 元数据对象用于数据库迁移
metadata = Base.metadata
