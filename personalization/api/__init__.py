"""FastAPI surface for the personalization engine."""
