from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from sitereport.models.session import DescriptionItem, Location, MediaItem, Session, utc_now

FALLBACK_INTENT = "durum_guncelleme"


class ExtractionItem(BaseModel):
    """One work item pulled out of the combined description.

    Field names follow the downstream report schema.
    """

    model_config = ConfigDict(extra="allow")

    intent: str
    intent_confidence: float = 0.0
    is_kalemi_kodu: Optional[str] = None
    is_kalemi_adi: Optional[str] = None
    is_kalemi_confidence: Optional[float] = None
    blok: Optional[str] = None
    daire_no: Optional[str] = None
    kat: Optional[str] = None
    alan: Optional[str] = None
    aciklama: Optional[str] = None
    evidence_spans: list[str] = Field(default_factory=list)
    timing: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)


class ExtractionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[ExtractionItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("items", "extractions"),
        serialization_alias="extractions",
    )
    summary: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("summary", "overall_summary"),
        serialization_alias="overall_summary",
    )
    notes: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("notes", "processing_notes"),
        serialization_alias="processing_notes",
    )

    @classmethod
    def degraded(cls, text: str, error: str) -> "ExtractionResult":
        """Single-item stand-in used when extraction fails."""
        return cls(
            items=[
                ExtractionItem(
                    intent=FALLBACK_INTENT,
                    intent_confidence=0.5,
                    aciklama=text,
                    evidence_spans=["extraction failed"],
                    errors=[error],
                )
            ],
            summary=text,
            notes=[f"Extraction failed: {error}"],
        )


class ForwardPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["workflow_complete"] = "workflow_complete"
    workflow_id: str
    reporter_key: str
    location: Optional[Location] = None
    media: tuple[MediaItem, ...] = ()
    descriptions: tuple[DescriptionItem, ...] = ()
    concatenated_description: str
    extraction_result: ExtractionResult
    workflow_start: datetime
    workflow_end: datetime
    duration_ms: int

    @classmethod
    def from_session(
        cls,
        session: Session,
        concatenated_description: str,
        extraction_result: ExtractionResult,
        now: datetime | None = None,
    ) -> "ForwardPayload":
        end = now or utc_now()
        return cls(
            workflow_id=session.workflow_id,
            reporter_key=session.reporter_key,
            location=session.location,
            media=session.media_items,
            descriptions=session.description_items,
            concatenated_description=concatenated_description,
            extraction_result=extraction_result,
            workflow_start=session.created_at,
            workflow_end=end,
            duration_ms=int((end - session.created_at).total_seconds() * 1000),
        )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
