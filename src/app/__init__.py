"""
App layer: 로컬 API 서버 (FastAPI).

역할:
- 크기 조회, 일괄 이름 변경/복제, 레이아웃 변환 요청 처리
- 실패는 결과 값 → HTTP 에러 응답으로 변환
- ⚠️ 파일 안전 로직 없음 (core에 위임)
"""
