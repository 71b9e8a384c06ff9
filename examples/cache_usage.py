#!/usr/bin/env python3
"""
스크립트 저장소 캐시 사용 예제

저장소 추가, 스크립트 조회, 이름 충돌 선택, 실행, 일괄 업데이트 흐름을 보여줍니다.

사용법:
    python examples/cache_usage.py <저장소 URL> [<저장소 URL> ...]
"""

import sys
import tempfile

from qicache import QiCacheException, exit_code_for, open_cache
from qicache.models.enums import ListGrouping
from qicache.scripts.selectors import AutoConfirmer, FirstMatchSelector


def main(urls) -> int:
    """
    메인 함수

    Args:
        urls: 추가할 저장소 URL 목록

    Returns:
        종료 코드
    """
    cache_dir = tempfile.mkdtemp(prefix="qi-cache-")
    cache = open_cache({"cache_dir": cache_dir, "verbose": True}, selector=FirstMatchSelector())

    try:
        print("=== 1. 저장소 추가 ===")
        for url in urls:
            entry = cache.add_repository(url)
            print(f"- {entry.name}: {entry.script_count}개 스크립트 ({entry.default_branch})")

        print("\n=== 2. 스크립트 목록 (이름별) ===")
        print(cache.list_scripts() or "(없음)")

        print("\n=== 3. 스크립트 목록 (저장소별) ===")
        print(cache.list_scripts(ListGrouping.REPOSITORY) or "(없음)")

        print("\n=== 4. 일괄 업데이트 ===")
        for outcome in cache.update_all():
            print(f"- {outcome.repository_name}: {outcome.status.value} {outcome.message}".rstrip())

        print("\n=== 5. 캐시 검증 및 통계 ===")
        issues = cache.validate()
        print(f"문제: {len(issues)}개")
        stats = cache.stats()
        print(f"저장소: {stats.repository_count}개, 크기: {stats.total_size}")

        print("\n=== 6. 저장소 삭제 ===")
        for entry in cache.list_repositories():
            cache.remove_repository(entry.name, confirmer=AutoConfirmer(True))
            print(f"- {entry.name} 삭제됨")

    except QiCacheException as e:
        print(e.describe(verbose=True), file=sys.stderr)
        return exit_code_for(e)

    return 0


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    sys.exit(main(sys.argv[1:]))
