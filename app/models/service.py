from sqlmodel import Field, SQLModel


class Service(SQLModel, table=True):
    __tablename__ = "services"
    id: int | None = Field(default=None, primary_key=True)
    professional_profile_id: int = Field(foreign_key="professional_profiles.id", index=True)
    name: str
    price: float
    duration_minutes: int
