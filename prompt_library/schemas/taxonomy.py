from pydantic import BaseModel, ConfigDict

Identifier = int | str


class CategoryOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Identifier
    slug: str
    name: str | None = None
    name_th: str | None = None
    name_en: str | None = None
    description: str | None = None
    sort: int | None = None


class JobRoleOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Identifier
    slug: str
    name: str | None = None
    description: str | None = None
    sort: int | None = None


class MethodTypeOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Identifier
    slug: str
    name_th: str | None = None
    name_en: str | None = None


class SubcategoryOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Identifier
    slug: str | None = None
    name_th: str | None = None
    name_en: str | None = None
    description_th: str | None = None
    description_en: str | None = None
    category: CategoryOut | None = None
