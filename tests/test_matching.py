import unittest

from movieverse.client.identity import IdentityIndex, MovieRecord
from movieverse.client.matching import find_favorite, is_favorite, same_title_year


class TestFindFavorite(unittest.TestCase):
    def setUp(self) -> None:
        self.favorites = [
            {"movieId": "tt1375666", "title": "Inception", "year": "2010"},
            {"movieId": "603", "title": "The Matrix", "year": "1999"},
        ]

    def test_exact_identifier(self) -> None:
        found = find_favorite({"id": 603, "title": "Matrix"}, self.favorites)
        self.assertEqual(found.canonical_id, "603")

    def test_title_year_fallback_across_sources(self) -> None:
        candidate = {"id": 27205, "title": "  inception ", "release_date": "2010-07-15"}
        self.assertTrue(is_favorite(candidate, self.favorites))
        self.assertEqual(find_favorite(candidate, self.favorites).canonical_id, "tt1375666")

    def test_year_must_match_exactly(self) -> None:
        self.assertFalse(is_favorite({"id": 99999, "title": "Inception", "release_date": "2011-01-01"}, self.favorites))

    def test_alias_lookup_through_index(self) -> None:
        index = IdentityIndex()
        index.register({"id": 27205, "title": "Inception", "external_ids": {"imdb_id": "tt1375666"}})
        candidate = {"id": 27205, "title": "Inception (Director's Cut)", "release_date": "2010-07-15"}

        self.assertFalse(is_favorite(candidate, self.favorites))
        self.assertTrue(is_favorite(candidate, self.favorites, index))

    def test_candidate_without_identifier(self) -> None:
        self.assertIsNone(find_favorite({"overview": "nothing"}, self.favorites))
        self.assertIsNone(find_favorite(None, self.favorites))

    def test_missing_years_compare_equal(self) -> None:
        left = MovieRecord("1", title="Nosferatu")
        right = MovieRecord("2", title="nosferatu")
        self.assertTrue(same_title_year(left, right))

    def test_empty_favorites(self) -> None:
        self.assertFalse(is_favorite({"id": 603, "title": "The Matrix"}, []))


if __name__ == "__main__":
    unittest.main()
