"""
本地持久化存储（Local Durable Store）

负责：
1. 记录会话的创建、更新、查询与删除
2. 指标分块的写入（只插入不更新，唯一约束保证同一页不会被重写）
3. 统计信息查询（分块数、样本数、涉及的指标）

每次操作打开独立的 SQLAlchemy 会话，采集线程与提交流程可以并发调用。
任何数据库异常都转换为 DurabilityError 向上抛出，绝不静默吞掉。
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..core.analytics.time_utils import now_ms
from ..db_base import Base
from ..exceptions import DurabilityError
from .models import (
    ActivityType,
    RecordingSession,
    RecordingState,
    StreamChunk,
    TbRecordingSession,
    TbStreamChunk,
)

logger = logging.getLogger(__name__)


class RecordingStore:
    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    # ================================
    # 会话（Recording Session）
    # ================================

    def create_session(
        self,
        owner_id: str,
        activity_type: ActivityType,
        plan_id: Optional[str] = None,
    ) -> RecordingSession:
        row = TbRecordingSession(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            state=RecordingState.PENDING.value,
            activity_type=ActivityType(activity_type).value,
            plan_id=plan_id,
            created_at=now_ms(),
        )
        with self.SessionLocal() as db:
            try:
                db.add(row)
                db.commit()
                db.refresh(row)
                logger.info(f"[store][session-created] id={row.id} owner={owner_id}")
                return RecordingSession.model_validate(row)
            except SQLAlchemyError as e:
                db.rollback()
                raise DurabilityError(f"创建记录会话失败: {e}") from e

    def get_session(self, session_id: str) -> Optional[RecordingSession]:
        with self.SessionLocal() as db:
            try:
                row = db.get(TbRecordingSession, session_id)
            except SQLAlchemyError as e:
                raise DurabilityError(f"读取记录会话失败: {e}") from e
            return RecordingSession.model_validate(row) if row else None

    def update_session(self, session_id: str, **fields: Any) -> RecordingSession:
        with self.SessionLocal() as db:
            try:
                row = db.get(TbRecordingSession, session_id)
                if row is None:
                    raise DurabilityError(f"记录会话不存在: {session_id}")
                for key, value in fields.items():
                    if isinstance(value, RecordingState):
                        value = value.value
                    setattr(row, key, value)
                db.commit()
                db.refresh(row)
                return RecordingSession.model_validate(row)
            except SQLAlchemyError as e:
                db.rollback()
                raise DurabilityError(f"更新记录会话失败: session={session_id}, error: {e}") from e

    def list_sessions(self, owner_id: Optional[str] = None) -> List[RecordingSession]:
        with self.SessionLocal() as db:
            try:
                query = db.query(TbRecordingSession)
                if owner_id is not None:
                    query = query.filter(TbRecordingSession.owner_id == owner_id)
                rows = query.order_by(TbRecordingSession.created_at.desc()).all()
            except SQLAlchemyError as e:
                raise DurabilityError(f"查询记录会话失败: {e}") from e
            return [RecordingSession.model_validate(r) for r in rows]

    # ================================
    # 分块（Stream Chunk）
    # ================================

    def write_chunk(self, chunk: StreamChunk) -> None:
        """插入一页分块；同一 (session, metric, chunk_index) 已存在时抛 DurabilityError。"""
        row = TbStreamChunk(**chunk.model_dump(mode='json'))
        with self.SessionLocal() as db:
            try:
                db.add(row)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise DurabilityError(
                    f"分块写入失败: session={chunk.session_id}, metric={chunk.metric}, "
                    f"chunk_index={chunk.chunk_index}, error: {e}"
                ) from e
        logger.debug(
            f"[store][chunk-written] session={chunk.session_id} metric={chunk.metric} "
            f"index={chunk.chunk_index} samples={chunk.sample_count}"
        )

    def list_chunks(self, session_id: str, metric: Optional[str] = None) -> List[StreamChunk]:
        with self.SessionLocal() as db:
            try:
                query = db.query(TbStreamChunk).filter(TbStreamChunk.session_id == session_id)
                if metric is not None:
                    query = query.filter(TbStreamChunk.metric == metric)
                rows = query.order_by(TbStreamChunk.metric, TbStreamChunk.chunk_index).all()
            except SQLAlchemyError as e:
                raise DurabilityError(f"读取分块失败: session={session_id}, error: {e}") from e
            return [StreamChunk.model_validate(r) for r in rows]

    # ================================
    # 删除与统计
    # ================================

    def delete_recording(self, session_id: str) -> int:
        """删除会话及其全部分块，返回删除的分块数。"""
        with self.SessionLocal() as db:
            try:
                deleted = db.query(TbStreamChunk).filter(
                    TbStreamChunk.session_id == session_id
                ).delete(synchronize_session=False)
                db.query(TbRecordingSession).filter(
                    TbRecordingSession.id == session_id
                ).delete(synchronize_session=False)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise DurabilityError(f"删除本地记录失败: session={session_id}, error: {e}") from e
        logger.info(f"[store][deleted] session={session_id} chunks={deleted}")
        return deleted

    def delete_unfinished(self, owner_id: str) -> List[str]:
        """删除该用户所有未完成（非 finished）的记录，保证一台设备同时只有一个活动会话。"""
        with self.SessionLocal() as db:
            try:
                ids = [
                    r.id for r in db.query(TbRecordingSession.id).filter(
                        TbRecordingSession.owner_id == owner_id,
                        TbRecordingSession.state != RecordingState.FINISHED.value,
                    ).all()
                ]
                if ids:
                    db.query(TbStreamChunk).filter(
                        TbStreamChunk.session_id.in_(ids)
                    ).delete(synchronize_session=False)
                    db.query(TbRecordingSession).filter(
                        TbRecordingSession.id.in_(ids)
                    ).delete(synchronize_session=False)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise DurabilityError(f"清理未完成记录失败: owner={owner_id}, error: {e}") from e
        if ids:
            logger.info(f"[store][cleanup] owner={owner_id} removed={ids}")
        return ids

    def recording_stats(self, session_id: str) -> Dict[str, Any]:
        with self.SessionLocal() as db:
            try:
                rows = db.query(
                    TbStreamChunk.metric,
                    func.count(TbStreamChunk.id),
                    func.sum(TbStreamChunk.sample_count),
                ).filter(
                    TbStreamChunk.session_id == session_id
                ).group_by(TbStreamChunk.metric).all()
            except SQLAlchemyError as e:
                raise DurabilityError(f"统计分块失败: session={session_id}, error: {e}") from e
        per_metric = {metric: {'chunks': int(count), 'samples': int(samples or 0)} for metric, count, samples in rows}
        return {
            'total_chunks': sum(m['chunks'] for m in per_metric.values()),
            'total_samples': sum(m['samples'] for m in per_metric.values()),
            'metrics': sorted(per_metric),
            'per_metric': per_metric,
        }
