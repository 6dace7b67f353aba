from request_checker.application.ranking import build_ranking, build_request_ranking
from request_checker.domain.entities import RankEntry, RequestRankEntry, Song


class TestBuildRanking:
    """Tests for the search-popularity leaderboard."""

    def setup_method(self):
        self.songs = [
            Song("Lemon", "米津玄師"),
            Song("白日", "King Gnu"),
            Song("Lemon", "Someone Else"),
        ]

    def test_orders_by_count_descending(self):
        ranking = build_ranking({"Lemon": 3, "白日": 5}, self.songs)
        assert ranking == [
            RankEntry(id="白日", count=5, artist="King Gnu"),
            RankEntry(id="Lemon", count=3, artist="米津玄師"),
        ]

    def test_ties_break_by_title(self):
        ranking = build_ranking({"b": 2, "a": 2, "c": 2}, [])
        assert [e.id for e in ranking] == ["a", "b", "c"]

    def test_zero_and_negative_counts_are_dropped(self):
        ranking = build_ranking({"Lemon": 0, "白日": -1, "x": 1}, self.songs)
        assert [e.id for e in ranking] == ["x"]

    def test_unknown_title_has_empty_artist(self):
        ranking = build_ranking({"消えた曲": 4}, self.songs)
        assert ranking == [RankEntry(id="消えた曲", count=4, artist="")]

    def test_limit(self):
        counts = {f"t{i}": i + 1 for i in range(10)}
        assert len(build_ranking(counts, [], limit=3)) == 3
        assert build_ranking(counts, [], limit=0) == []
        assert build_ranking(counts, [], limit=-1) == []

    def test_empty_counts(self):
        assert build_ranking({}, self.songs) == []

    def test_to_dict(self):
        entry = build_ranking({"Lemon": 1}, self.songs)[0]
        assert entry.to_dict() == {"id": "Lemon", "count": 1, "artist": "米津玄師"}


class TestBuildRequestRanking:
    """Tests for the request leaderboard."""

    def test_orders_requested_terms(self):
        ranking = build_request_ranking({"新曲": 1, "Lemon": 4, "猫": 4})
        assert ranking == [
            RequestRankEntry(id="Lemon", count=4),
            RequestRankEntry(id="猫", count=4),
            RequestRankEntry(id="新曲", count=1),
        ]

    def test_limit(self):
        assert build_request_ranking({"a": 1, "b": 2}, limit=1) == [RequestRankEntry(id="b", count=2)]

    def test_limit_with_tied_counts(self):
        ranking = build_ranking({"A": 5, "B": 9, "C": 9}, [], limit=2)
        assert [(e.id, e.count) for e in ranking] == [("B", 9), ("C", 9)]
