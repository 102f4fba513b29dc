import json
import unittest
from datetime import datetime, timedelta
from unittest import mock

import fakeredis
import mongomock
from pymongo.errors import ServerSelectionTimeoutError

from movieverse.api.api_favorites import favorites
from movieverse.api.api_favorites.favorites_functions import ensure_favorite_indexes

USER = "u000000000001"


class TestFavoritesApi(unittest.TestCase):
    def setUp(self) -> None:
        self.collection = mongomock.MongoClient().api_favorites.favorites
        ensure_favorite_indexes(self.collection)
        self.redis = fakeredis.FakeRedis()
        self.poster_lookup = mock.Mock(return_value="https://img.example/poster.jpg")

        patches = [
            mock.patch.object(favorites, "favorites_collection", self.collection),
            mock.patch.object(favorites, "r", self.redis),
            mock.patch.object(favorites, "fetch_movie_poster", self.poster_lookup),
        ]
        for patcher in patches:
            patcher.start()
            self.addCleanup(patcher.stop)

        self.client = favorites.app.test_client()

    def post_favorite(self, **body):
        body.setdefault("userId", USER)
        return self.client.post("/favorites", json=body)

    def test_add_and_list(self) -> None:
        response = self.post_favorite(movieId="550", title="Fight Club", year="1999", posterPath="/fc.jpg")
        self.assertEqual(response.status_code, 201)
        data = response.get_json()
        self.assertTrue(data["success"])
        self.assertEqual(data["favorite"]["poster"], "https://image.tmdb.org/t/p/w500/fc.jpg")
        self.assertTrue(data["favorite"]["addedAt"].endswith("Z"))
        self.poster_lookup.assert_not_called()

        listing = self.client.get(f"/favorites/{USER}").get_json()
        self.assertEqual(listing["count"], 1)
        self.assertEqual(listing["favorites"][0]["movieId"], "550")

    def test_missing_poster_uses_lookup(self) -> None:
        response = self.post_favorite(movieId="tt0113277", title="Heat", year="1995")
        self.assertEqual(response.get_json()["favorite"]["poster"], "https://img.example/poster.jpg")
        self.poster_lookup.assert_called_once_with("tt0113277")

    def test_validation_error(self) -> None:
        response = self.client.post("/favorites", json={"userId": USER})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json(), {"success": False, "message": "userId and movieId are required"})

    def test_non_json_body(self) -> None:
        response = self.client.post("/favorites", data="not json", content_type="text/plain")
        self.assertEqual(response.status_code, 400)

    def test_duplicate_returns_existing_entry(self) -> None:
        self.post_favorite(movieId="tt1375666", title="Inception", year="2010")
        response = self.post_favorite(movieId="27205", title="Inception", year="2010")

        self.assertEqual(response.status_code, 400)
        data = response.get_json()
        self.assertEqual(data["message"], "Movie already in favorites")
        self.assertEqual(data["favorite"]["movieId"], "tt1375666")
        self.assertEqual(self.collection.count_documents({"userId": USER}), 1)

    def test_list_is_cached_and_invalidated(self) -> None:
        self.post_favorite(movieId="1", title="One", year="2001")
        self.assertEqual(self.client.get(f"/favorites/{USER}").get_json()["count"], 1)
        self.assertIsNotNone(self.redis.get(f"favorites:{USER}"))

        self.collection.insert_one({"userId": USER, "movieId": "sneaky", "title": "Direct insert", "year": "2002"})
        self.assertEqual(self.client.get(f"/favorites/{USER}").get_json()["count"], 1)

        self.post_favorite(movieId="2", title="Two", year="2002")
        self.assertIsNone(self.redis.get(f"favorites:{USER}"))
        self.assertEqual(self.client.get(f"/favorites/{USER}").get_json()["count"], 3)

    def test_check(self) -> None:
        self.post_favorite(movieId="550", title="Fight Club", year="1999")
        data = self.client.get(f"/favorites/{USER}/check/550").get_json()
        self.assertTrue(data["isFavorite"])
        self.assertEqual(data["favorite"]["title"], "Fight Club")

        data = self.client.get(f"/favorites/{USER}/check/603").get_json()
        self.assertEqual(data, {"success": True, "isFavorite": False, "favorite": None})

    def test_remove_with_prefixed_identifier(self) -> None:
        self.post_favorite(movieId="550", title="Fight Club", year="1999")
        response = self.client.delete(f"/favorites/{USER}/tmdb-550")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["deleted"]["movieId"], "550")
        self.assertEqual(self.collection.count_documents({}), 0)

    def test_remove_missing(self) -> None:
        response = self.client.delete(f"/favorites/{USER}/603")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json(), {"success": False, "message": "Favorite not found"})

    def test_clear_is_not_shadowed_by_remove(self) -> None:
        self.post_favorite(movieId="1", title="One", year="2001")
        self.post_favorite(movieId="2", title="Two", year="2002")

        data = self.client.delete(f"/favorites/{USER}/clear").get_json()
        self.assertEqual(data["deletedCount"], 2)

        data = self.client.delete(f"/favorites/{USER}/clear").get_json()
        self.assertEqual(data["deletedCount"], 0)

    def test_update_posters(self) -> None:
        self.collection.insert_one({"userId": USER, "movieId": "550", "title": "Fight Club", "poster": "N/A"})
        data = self.client.post(f"/favorites/update-posters/{USER}").get_json()
        self.assertEqual((data["updatedCount"], data["totalChecked"]), (1, 1))

    def test_cleanup_duplicates(self) -> None:
        self.collection.insert_many([
            {"userId": USER, "movieId": "438631", "title": "Dune", "year": "2021", "addedAt": datetime(2024, 1, 1)},
            {"userId": USER, "movieId": "tt1160419", "title": "Dune", "year": "2021", "addedAt": datetime(2024, 1, 1) + timedelta(hours=1)},
        ])
        data = self.client.post(f"/favorites/{USER}/cleanup-duplicates").get_json()
        self.assertEqual(data["removedCount"], 1)
        self.assertEqual(self.collection.find_one({"userId": USER})["movieId"], "438631")

        data = self.client.post(f"/favorites/{USER}/cleanup-duplicates").get_json()
        self.assertEqual(data["message"], "No duplicates found")

    def test_indexes_created_on_first_request(self) -> None:
        fresh = mongomock.MongoClient().api_favorites.favorites
        with mock.patch.object(favorites, "favorites_collection", fresh), mock.patch.object(favorites, "indexes_ready", False):
            self.client.get(f"/favorites/{USER}")
            self.assertTrue(favorites.indexes_ready)

        unique_keys = [info["key"] for info in fresh.index_information().values() if info.get("unique")]
        self.assertIn([("userId", 1), ("movieId", 1)], unique_keys)

    def test_index_failure_retried_on_next_request(self) -> None:
        broken = mock.Mock()
        broken.create_index.side_effect = ServerSelectionTimeoutError("no servers")
        broken.find.side_effect = ServerSelectionTimeoutError("no servers")
        with mock.patch.object(favorites, "favorites_collection", broken), mock.patch.object(favorites, "indexes_ready", False):
            self.client.get(f"/favorites/{USER}")
            self.assertFalse(favorites.indexes_ready)
            self.client.get(f"/favorites/{USER}")
            self.assertEqual(broken.create_index.call_count, 2)

    def test_concurrent_duplicate_add_rejected(self) -> None:
        self.post_favorite(movieId="550", title="Fight Club", year="1999")
        with mock.patch("movieverse.api.api_favorites.favorites_functions.find_duplicate", return_value=None):
            response = self.post_favorite(movieId="550", title="Fight Club", year="1999")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["favorite"]["movieId"], "550")
        self.assertEqual(self.collection.count_documents({"userId": USER}), 1)

    def test_database_failure_is_server_error(self) -> None:
        broken = mock.Mock()
        broken.find.side_effect = ServerSelectionTimeoutError("no servers")
        with mock.patch.object(favorites, "favorites_collection", broken):
            response = self.client.get("/favorites/nobody")

        self.assertEqual(response.status_code, 500)
        data = json.loads(response.data)
        self.assertFalse(data["success"])
        self.assertEqual(data["message"], "Server error fetching favorites")


if __name__ == "__main__":
    unittest.main()
