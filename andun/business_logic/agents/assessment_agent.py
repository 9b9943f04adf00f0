# andun/business_logic/agents/assessment_agent.py
from andun.models.schemas import Message, SubjectRecord
from ..services.memory_injector import MemoryInjector
from .conversation_agent import ConversationAgent


class AssessmentAgent(ConversationAgent):
    """评估智能体：通过自然聊天收集心理状态信息"""

    agent_type = "assessment"
    temperature = 0.5

    def build_memory_context(self, record: SubjectRecord) -> str:
        return MemoryInjector.build_assessment_context(record.memory)

    def welcome_message(self) -> Message:
        return self.scripted_message("welcome")
