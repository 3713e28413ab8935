"""
Service 層

純計算與唯讀查詢，不做狀態轉換：
- card_service: 牌組、發牌、點數、贏家
- naming_service: 顯示名稱與聊天旁白
- state_service: state_version 加一 + room_state 事件
- stats_service: 已結束牌局的統計
"""
