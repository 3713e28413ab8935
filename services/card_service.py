"""
Card service："21" 的牌組、發牌與計分規則

純計算，處理可直接存成 JSON 的 dict；不碰 session，也不做狀態轉換
（那是 GameManager 的事）

資料形狀：
    card:       {"suit": "♠", "rank": "A", "id": "♠-A"}
    hand:       {"user_id", "display_name", "cards", "passed", "turn_order"}
    game state: {"deck", "players", "current_player_index", "round_ended", "game_id"}
"""
import random
from typing import Any, Dict, List, Optional

SUITS = ["♠", "♥", "♦", "♣"]
RANKS = ["A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K"]
FACE_RANKS = {"J", "Q", "K"}

TARGET = 21
CARDS_PER_HAND = 2

Card = Dict[str, str]
Hand = Dict[str, Any]


def make_card(suit: str, rank: str) -> Card:
    return {"suit": suit, "rank": rank, "id": f"{suit}-{rank}"}


def create_deck(rng: Optional[random.Random] = None) -> List[Card]:
    """
    建立洗好的 52 張牌（無鬼牌）

    參數：
        rng: 可選的 random.Random，測試時用來固定洗牌結果

    返回：
        新的 list，最前面是下一張要抽的牌
    """
    deck = [make_card(suit, rank) for suit in SUITS for rank in RANKS]
    (rng or random).shuffle(deck)
    return deck


def card_value(rank: str) -> int:
    """Ace 在這裡算 11；需要時由 calculate_hand_value 降成 1"""
    if rank == "A":
        return 11
    if rank in FACE_RANKS:
        return 10
    return int(rank)


def calculate_hand_value(cards: List[Card]) -> int:
    """
    手牌點數（Ace 軟 / 硬判斷）

    每張 Ace 先算 11；總和超過 21 且還有算 11 的 Ace 時，把一張 Ace 降成 1

    範例：
        [A, A]      -> 12
        [A, K]      -> 21
        [10, 10, 5] -> 25
    """
    total = 0
    aces = 0
    for card in cards:
        if card["rank"] == "A":
            aces += 1
        total += card_value(card["rank"])

    while total > TARGET and aces > 0:
        total -= 10
        aces -= 1

    return total


def is_busted(cards: List[Card]) -> bool:
    return calculate_hand_value(cards) > TARGET


def is_blackjack(cards: List[Card]) -> bool:
    return len(cards) == CARDS_PER_HAND and calculate_hand_value(cards) == TARGET


def is_hand_finished(hand: Hand) -> bool:
    """停牌或爆牌就算結束"""
    return hand["passed"] or is_busted(hand["cards"])


def all_hands_finished(players: List[Hand]) -> bool:
    return all(is_hand_finished(hand) for hand in players)


def deal(participants: List[Dict[str, Any]], rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """
    發一局新的牌

    流程：
    1. 建立洗好的牌組
    2. 第 i 位玩家拿 deck[2i] 與 deck[2i + 1]，turn_order = i（加入順序）
    3. 剩下的牌從發出去的牌之後開始

    參數：
        participants: 房間成員（加入順序）
        rng: 可選的 random.Random

    返回：
        game state dict（current_player_index=0, round_ended=False, game_id=None）
    """
    deck = create_deck(rng)
    players = []
    for index, participant in enumerate(participants):
        start = index * CARDS_PER_HAND
        players.append({
            "user_id": participant["user_id"],
            "display_name": participant["display_name"],
            "cards": deck[start:start + CARDS_PER_HAND],
            "passed": False,
            "turn_order": index,
        })

    return {
        "deck": deck[len(players) * CARDS_PER_HAND:],
        "players": players,
        "current_player_index": 0,
        "round_ended": False,
        "game_id": None,
    }


def next_player_index(current: int, player_count: int) -> int:
    return (current + 1) % player_count


def next_active_index(players: List[Hand], current: int) -> int:
    """
    下一位還沒結束的玩家

    從 current 的下一位開始繞一圈，跳過已停牌 / 爆牌的手牌
    （例如中途離開房間的玩家）；全部都結束時就是單純的下一位
    """
    count = len(players)
    for step in range(1, count + 1):
        candidate = (current + step) % count
        if not is_hand_finished(players[candidate]):
            return candidate
    return next_player_index(current, count)


def determine_winner(players: List[Hand]) -> Optional[Dict[str, Any]]:
    """
    決定本局贏家

    爆牌的手牌不列入，其餘依點數由高到低排序；
    sorted() 是穩定排序，同分時 turn_order 較前者勝

    返回：
        {"user_id", "display_name", "score"}，全員爆牌時為 None
    """
    standing = [
        (calculate_hand_value(hand["cards"]), hand)
        for hand in players
        if not is_busted(hand["cards"])
    ]
    if not standing:
        return None

    ranked = sorted(standing, key=lambda entry: entry[0], reverse=True)
    score, hand = ranked[0]
    return {
        "user_id": hand["user_id"],
        "display_name": hand["display_name"],
        "score": score,
    }
