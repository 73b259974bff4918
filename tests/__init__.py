"""키오스크 테스트 공용 도구"""
