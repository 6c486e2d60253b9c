from models.base_model import Base, BaseModel
from sqlalchemy import Column, String

from utils.roles import DEFAULT_ROLE


class User(BaseModel, Base):
    __tablename__ = "users"
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default=DEFAULT_ROLE)

    def __repr__(self):
        return f"<User {self.email} role={self.role}>"
