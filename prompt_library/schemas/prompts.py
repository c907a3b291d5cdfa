from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Difficulty = Literal["beginner", "intermediate", "advanced"]
PromptStatus = Literal["draft", "published", "archived"]
Identifier = int | str


class PromptQuery(BaseModel):
    page: int = 1
    page_size: int = 20
    categories: list[str] = Field(default_factory=list)
    job_roles: list[str] = Field(default_factory=list)
    difficulty: Difficulty | None = None
    method_type: str | None = None
    search: str | None = None


class PromptCard(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    title_th: str | None = None
    title_en: str | None = None
    short_title_th: str | None = None
    short_title_en: str | None = None
    description: str | None = None
    difficulty_level: Difficulty | None = None
    prompt_type_id: Identifier | None = None
    subcategory_id: Identifier | None = None


class PromptDetail(PromptCard):
    status: PromptStatus = "published"
    prompt_text: str | None = None
    sort: int | None = None


class PromptPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[PromptCard] = Field(default_factory=list)
    total: int = 0
    total_pages: int = Field(default=0, alias="totalPages")


class PromptCardOut(PromptCard):
    locked: bool = False


class PromptPageOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[PromptCardOut] = Field(default_factory=list)
    total: int = 0
    total_pages: int = Field(default=0, alias="totalPages")


class PromptDetailOut(PromptDetail):
    locked: bool = False
