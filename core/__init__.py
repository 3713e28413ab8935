"""
核心業務邏輯

遊戲房間的所有狀態轉換都在這裡：
- RoomManager: 房間生命週期、成員、準備、開始 / 停止
- GameManager: 發牌、要牌 / 停牌、結算
- RoomStateMachine: waiting <-> started
- chat_log: 只能新增的旁白與使用者訊息
- locks: 每個房間單一寫入者、防連點
- broadcaster: commit 之後的變更串流
"""
