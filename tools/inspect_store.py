#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
本地记录查看工具

用于查看和清理本地存储中的记录会话与分块
包含查看状态、会话列表、分块统计、删除等功能
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from activity_recorder.config import get_database_url
from activity_recorder.core.analytics.time_utils import format_time, ms_to_datetime
from activity_recorder.exceptions import DurabilityError
from activity_recorder.recording.store import RecordingStore
from activity_recorder.utils import build_engine


def _fmt_ms(ms):
    return ms_to_datetime(ms).strftime('%Y-%m-%d %H:%M:%S') if ms else '-'


def print_status(store: RecordingStore):
    sessions = store.list_sessions()
    by_state = {}
    for s in sessions:
        by_state[s.state.value] = by_state.get(s.state.value, 0) + 1
    print(f"\n📊 本地存储状态:")
    print("=" * 50)
    for state, count in sorted(by_state.items()):
        print(f"📋 {state}: {count} 个会话")
    print("-" * 50)
    print(f"📈 总计: {len(sessions)} 个会话")


def print_sessions(store: RecordingStore):
    sessions = store.list_sessions()
    print(f"\n📋 所有会话 ({len(sessions)} 个):")
    print("-" * 100)
    print(f"{'会话ID':<38} {'用户':<12} {'类型':<20} {'状态':<10} {'开始时间':<20} {'时长':<8}")
    print("-" * 100)
    for s in sessions:
        print(f"{s.id:<38} {s.owner_id:<12} {s.activity_type.value:<20} {s.state.value:<10} "
              f"{_fmt_ms(s.started_at):<20} {format_time(s.total_elapsed_time) or '-':<8}")


def print_session_detail(store: RecordingStore, session_id: str):
    session = store.get_session(session_id)
    if session is None:
        print(f"❌ 会话不存在: {session_id}")
        return
    stats = store.recording_stats(session_id)
    print(f"\n📄 会话详情 ({session_id}):")
    print("-" * 50)
    print(f"用户: {session.owner_id}")
    print(f"类型: {session.activity_type.value}")
    print(f"状态: {session.state.value}")
    print(f"开始: {_fmt_ms(session.started_at)}  结束: {_fmt_ms(session.finished_at)}")
    print(f"运动时间: {format_time(session.moving_time)}  读数: {session.data_points_recorded}")
    print(f"分块: {stats['total_chunks']}  样本: {stats['total_samples']}")
    for metric, item in sorted(stats['per_metric'].items()):
        print(f"  - {metric:<12} 分块 {item['chunks']:<4} 样本 {item['samples']}")


def main():
    """主函数"""
    print("🔍 本地记录查看工具")
    print("=" * 50)

    store = RecordingStore(build_engine(get_database_url()))
    store.create_tables()

    while True:
        print(f"\n选择操作:")
        print(f"1. 查看存储状态")
        print(f"2. 查看所有会话")
        print(f"3. 查看会话详情")
        print(f"4. 删除会话")
        print(f"5. 清理某用户未完成的会话")
        print(f"0. 退出")

        choice = input("\n请输入选择: ").strip()

        try:
            if choice == "1":
                print_status(store)
            elif choice == "2":
                print_sessions(store)
            elif choice == "3":
                print_session_detail(store, input("请输入会话ID: ").strip())
            elif choice == "4":
                session_id = input("请输入会话ID: ").strip()
                confirm = input(f"确认删除 {session_id} 及其全部分块? (y/N): ").strip().lower()
                if confirm == "y":
                    deleted = store.delete_recording(session_id)
                    print(f"✅ 已删除，分块 {deleted} 个")
            elif choice == "5":
                owner_id = input("请输入用户ID: ").strip()
                removed = store.delete_unfinished(owner_id)
                print(f"✅ 已清理 {len(removed)} 个未完成会话")
            elif choice == "0":
                print("👋 再见!")
                break
            else:
                print("❌ 无效选择")
        except DurabilityError as e:
            print(f"❌ 操作失败: {e}")


if __name__ == "__main__":
    main()
