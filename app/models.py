# app/models.py
from pydantic import BaseModel, Field, validator
from typing import List, Optional

from app.workflow.policy import CompareMode


class UploadResponse(BaseModel):
    """Response after uploading a document."""
    document_id: str
    filename: str
    num_pages: int
    chunks_created: int
    scanned_likely: bool
    total_extracted_chars: int
    non_empty_pages: int
    message: str = "Document uploaded and indexed successfully"


class ChatMessage(BaseModel):
    """One prior conversation turn."""
    role: str
    content: str

    @validator('role')
    def validate_role(cls, v):
        if v not in ("user", "assistant"):
            raise ValueError("Role must be 'user' or 'assistant'")
        return v


class AskRequest(BaseModel):
    """Request to ask a question about a document."""
    document_id: str = Field(..., min_length=1, max_length=100)
    question: str = Field(..., min_length=1, max_length=4000)
    messages: List[ChatMessage] = []

    @validator('question')
    def validate_question(cls, v):
        """Ensure question is not just whitespace."""
        if not v.strip():
            raise ValueError("Question cannot be empty or only whitespace")
        return v.strip()

    @validator('document_id')
    def validate_document_id(cls, v):
        """Ensure document_id is not just whitespace."""
        if not v.strip():
            raise ValueError("Document ID cannot be empty")
        return v.strip()


class SourceCitation(BaseModel):
    """Where an answer came from."""
    chunk_id: str
    page_start: int
    page_end: int
    score: Optional[float] = None
    excerpt: Optional[str] = None


class AskResponse(BaseModel):
    """Response after asking a question."""
    answer: str
    document_id: str
    kind: str
    sources: List[SourceCitation] = []
    retried: bool = False


class CompareRequest(BaseModel):
    """Request to compare two documents."""
    document_id_a: str = Field(..., min_length=1, max_length=100)
    document_id_b: str = Field(..., min_length=1, max_length=100)
    prompt: str = Field("", max_length=4000)
    mode: CompareMode = CompareMode.CONTENT


class CompareTopic(BaseModel):
    topic: str
    doc_a: str = ""
    doc_b: str = ""
    verdict: str = "unclear"
    notes: Optional[str] = None


class CompareStructured(BaseModel):
    mode: str
    task: str
    topics: List[CompareTopic] = []
    summary: Optional[str] = None


class CompareResponse(BaseModel):
    """Markdown comparison plus its normalized structured form."""
    answer: str
    mode: str
    task: str
    structured: CompareStructured
    sources_a: List[SourceCitation] = []
    sources_b: List[SourceCitation] = []


class SummarizeRequest(BaseModel):
    document_id: str = Field(..., min_length=1, max_length=100)
    question: Optional[str] = Field(None, max_length=4000)


class SummarizeResponse(BaseModel):
    summary: str
    document_id: str
    sources: List[SourceCitation] = []
    cached: bool


class DocumentInfo(BaseModel):
    """Information about a stored document."""
    document_id: str
    filename: str
    created_at: Optional[str] = None
    num_pages: int
    chunks_count: int
    scanned_likely: bool
    total_extracted_chars: int
    non_empty_pages: int
    has_summary: bool = False


class ListDocumentsResponse(BaseModel):
    """Response listing all documents in the system."""
    documents: List[DocumentInfo]
    total_documents: int
    total_chunks: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    cached_documents: int
    cached_chunks: int
