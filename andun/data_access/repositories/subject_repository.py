# andun/data_access/repositories/subject_repository.py

import copy
import json
import os
import datetime
from typing import Any, Dict, Optional

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from andun.business_logic.services.logger import logger
from andun.models.schemas import (
    PsychologicalStatus,
    Recommendation,
    StressSource,
    StructuredMemory,
    SubjectRecord,
)

RECORD_FIELDS = frozenset(SubjectRecord.model_fields)


def _demo_records() -> Dict[str, SubjectRecord]:
    """演示数据：u2 已有一份高风险报告"""
    return {
        "u2": SubjectRecord(
            memory=StructuredMemory(
                last_updated=datetime.datetime.now(datetime.timezone.utc),
                summary="该警员表现出明显的长期潜伏压力，可能由于长期的卧底工作导致身份认同困扰。表现出焦虑、失眠以及对周围环境的过度警觉。",
                stress_sources=[
                    StressSource(category="身份认同危机", description="长期处于高压伪装状态，难以切换回真实自我", severity=9),
                    StressSource(category="睡眠障碍", description="严重的入睡困难和噩梦", severity=8),
                ],
                psychological_status=PsychologicalStatus(
                    emotional_stability="较差，易激惹",
                    burnout_level="重度耗竭",
                    social_support="极度缺乏，孤立无援",
                ),
                risk_level="high",
                risk_analysis="存在高度的PTSD风险和抑郁倾向，建议立即介入干预。",
                recommendations=[
                    Recommendation(title="强制休假", content="建议立即停止一线任务，进行脱敏治疗。", type="professional"),
                ],
            ),
            turn_count=10,
        )
    }


class SubjectRepository:
    """
    按对象ID保存档案的键值存储

    get 在首次访问时创建空档案；save 只替换传入的顶层字段（浅合并，最后写入者生效）。
    配置了文件路径时，每次 save 后整体写回 JSON 文件。
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._records: Dict[str, SubjectRecord] = {}

    @classmethod
    async def create_repo(cls, path: Optional[str] = None, seed_demo_data: bool = False) -> "SubjectRepository":
        # async factory to load data then return repository instance
        repo = cls(path or None)
        await repo._load_data()
        if seed_demo_data:
            for subject_id, record in _demo_records().items():
                repo._records.setdefault(subject_id, record)
        return repo

    async def get(self, subject_id: str) -> SubjectRecord:
        record = self._records.get(subject_id)
        if record is None:
            record = SubjectRecord()
            self._records[subject_id] = record
        return record.model_copy(deep=True)

    async def save(self, subject_id: str, **fields: Any) -> SubjectRecord:
        unknown = set(fields) - RECORD_FIELDS
        if unknown:
            raise ValueError(f"未知的档案字段: {sorted(unknown)}")

        current = self._records.get(subject_id) or SubjectRecord()
        merged = {name: getattr(current, name) for name in RECORD_FIELDS}
        merged.update(copy.deepcopy(fields))
        record = SubjectRecord.model_validate(merged)
        self._records[subject_id] = record

        await self._save_data()
        return record.model_copy(deep=True)

    async def _save_data(self):
        if not self.path:
            return
        payload = {sid: record.model_dump(mode="json") for sid, record in self._records.items()}
        # 先写临时文件再整体替换，写入中途失败时旧文件保持完整
        tmp_path = f"{self.path}.tmp"
        async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(payload, indent=4, ensure_ascii=False))
        await aiofiles.os.replace(tmp_path, self.path)

    async def _load_data(self):
        if not self.path:
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        try:
            async with aiofiles.open(self.path, 'r', encoding='utf-8') as f:
                content = await f.read()
        except FileNotFoundError:
            return

        if not content.strip():
            return
        try:
            loaded = json.loads(content)
            self._records = {sid: SubjectRecord.model_validate(data) for sid, data in loaded.items()}
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"加载对象档案失败，将以空存储启动: {str(e)}")
            self._records = {}
        else:
            logger.info(f"已加载 {len(self._records)} 份对象档案")
