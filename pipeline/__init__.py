"""
Exam Question Extraction Pipeline.

Modules:
- pdf_loader: PDF to page image conversion
- structural_analyzer: First pass, shared descriptions per page
- vision_extractor: Second pass, question records with context
- answer_validator: Answer format checks per question type
- question_generator: New questions for a topic
- solver: Solve -> Validate -> Fix loop
- run: Two-pass driver and CLI
"""

from .pdf_loader import PDFLoader
from .structural_analyzer import StructuralAnalyzer
from .vision_extractor import VisionExtractor
from .question_generator import QuestionGenerator
from .solver import QuestionSolver
from .models import DocumentExtraction, ExtractedQuestion, FixOutcome, Topic

__all__ = [
    "PDFLoader",
    "StructuralAnalyzer",
    "VisionExtractor",
    "QuestionGenerator",
    "QuestionSolver",
    "DocumentExtraction",
    "ExtractedQuestion",
    "FixOutcome",
    "Topic",
]
