# andun/business_logic/agents/__init__.py

from .conversation_agent import ConversationAgent
from .assessment_agent import AssessmentAgent
from .counseling_agent import CounselingAgent
from .report_synthesizer import ReportSynthesizer

__all__ = [
    "ConversationAgent",
    "AssessmentAgent",
    "CounselingAgent",
    "ReportSynthesizer"
]
