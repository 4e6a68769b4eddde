from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator


class ProfileOut(BaseModel):
    user_id: str
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    rut: str | None = None
    birth_date: date | None = None
    gender: str | None = None
    region: str | None = None
    municipality: str | None = None
    address: str | None = None
    bio: str | None = None
    professional_headline: str | None = None
    disability_category: str | None = None
    has_disability_certificate: bool = False
    accessibility_needs: str | None = None
    created_at: datetime
    updated_at: datetime


class ProfileUpdateRequest(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=30)
    rut: str | None = Field(default=None, max_length=12)
    birth_date: date | None = None
    gender: str | None = Field(default=None, max_length=50)
    region: str | None = Field(default=None, max_length=100)
    municipality: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=300)
    bio: str | None = Field(default=None, max_length=2000)
    professional_headline: str | None = Field(default=None, max_length=200)
    disability_category: str | None = Field(default=None, max_length=100)
    has_disability_certificate: bool | None = None
    accessibility_needs: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "ProfileUpdateRequest":
        for field in ("first_name", "last_name", "has_disability_certificate"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class _DateRange(BaseModel):
    @model_validator(mode="after")
    def check_date_order(self) -> "_DateRange":
        start = getattr(self, "start_date", None)
        end = getattr(self, "end_date", None)
        if start is not None and end is not None and end < start:
            raise ValueError("end_date must not be before start_date")
        if getattr(self, "is_current", False) and end is not None:
            raise ValueError("current entries cannot have an end_date")
        return self


class EducationIn(_DateRange):
    institution_name: str = Field(min_length=1, max_length=200)
    degree: str | None = Field(default=None, max_length=200)
    field_of_study: str | None = Field(default=None, max_length=200)
    education_level: str | None = Field(default=None, max_length=100)
    start_date: date | None = None
    end_date: date | None = None
    is_current: bool = False
    description: str | None = Field(default=None, max_length=2000)


class EducationOut(EducationIn):
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime


class ExperienceIn(_DateRange):
    company_name: str = Field(min_length=1, max_length=200)
    position_title: str = Field(min_length=1, max_length=200)
    employment_type: str | None = Field(default=None, max_length=50)
    region: str | None = Field(default=None, max_length=100)
    start_date: date
    end_date: date | None = None
    is_current: bool = False
    description: str | None = Field(default=None, max_length=2000)


class ExperienceOut(ExperienceIn):
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime


class SkillIn(BaseModel):
    skill_name: str = Field(min_length=1, max_length=100)
    proficiency_level: int = Field(default=3, ge=1, le=5)
    years_experience: int | None = Field(default=None, ge=0, le=70)


class SkillOut(SkillIn):
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime


class LanguageIn(BaseModel):
    language: str = Field(min_length=1, max_length=100)
    proficiency: str = Field(min_length=1, max_length=50)


class LanguageOut(LanguageIn):
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime


class PortfolioIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    url: str | None = Field(default=None, max_length=500)
    completed_at: date | None = None


class PortfolioOut(PortfolioIn):
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime
