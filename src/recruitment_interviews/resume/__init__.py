"""
Resume module.

Provides resume download and text extraction, and the time-bounded cache
that keeps extracted text available for the length of an interview.
"""

from recruitment_interviews.resume.cache import (
    InMemoryResumeCache,
    RedisResumeCache,
    ResumeCache,
    create_resume_cache,
    resume_cache_key,
)
from recruitment_interviews.resume.extractor import (
    HttpResumeExtractor,
    ResumeExtractor,
    detect_format,
    extract_text,
)

__all__ = [
    "HttpResumeExtractor",
    "InMemoryResumeCache",
    "RedisResumeCache",
    "ResumeCache",
    "ResumeExtractor",
    "create_resume_cache",
    "detect_format",
    "extract_text",
    "resume_cache_key",
]
