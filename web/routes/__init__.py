"""
API 라우트 패키지

각 기능별 라우터 모듈:
- health: 헬스 체크
- issuers: 발행사/증권/주주 관리
- transactions: 거래 입력 및 이체 원장
- positions: 포지션 및 보유자 현황
- corporate_actions: 비율 관리 및 파생 수량
- reconciliation: 부호 오류 정정
- restrictions: 제한 주식
"""
