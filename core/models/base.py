from sqlalchemy import Boolean, Column, DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

__all__ = ["Base", "Column", "String", "Integer", "Float", "DateTime", "Boolean", "Text", "JSON"]
