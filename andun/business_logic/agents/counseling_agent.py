# andun/business_logic/agents/counseling_agent.py
from andun.models.schemas import Message, SubjectRecord
from ..services.memory_injector import MemoryInjector
from .conversation_agent import ConversationAgent


class CounselingAgent(ConversationAgent):
    """疏导智能体：基于评估报告和上传档案进行个性化心理疏导"""

    agent_type = "counseling"
    temperature = 0.6

    def build_memory_context(self, record: SubjectRecord) -> str:
        return MemoryInjector.build_counseling_context(record.memory, record.documents)

    def greeting_message(self) -> Message:
        """首次进入疏导时的开场白"""
        return self.scripted_message("greeting")
