"""
API 層

每個資源一個 router；業務異常統一經過 api.errors 轉成 HTTP，
業務規則留給 core/ 的 manager：
- rooms:     建立 / 列表 / 查詢 / 刪除、開始 / 停止
- players:   加入 / 離開 / 準備 / 踢人
- games:     發牌 / 要牌 / 停牌 / 新局 / 結算
- messages:  房間聊天
- stats:     已結束牌局統計
- websocket: 房間變更串流
"""
