import unittest
from unittest import mock

import requests

from movieverse.client.catalog import CatalogClient
from movieverse.client.response_cache import ResponseCache


def fake_response(payload, status_code=200):
    response = mock.Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = payload
    return response


class TestCatalogClient(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock()
        self.cache = ResponseCache(ttl_seconds=60, clock=lambda: 0.0)
        self.catalog = CatalogClient(
            cache=self.cache,
            session=self.session,
            omdb_api_key="omdb",
            tmdb_api_key="tmdb",
            youtube_api_key="yt",
        )

    def answer(self, *payloads):
        self.session.get.side_effect = [fake_response(payload) for payload in payloads]

    def test_trending_is_cached(self) -> None:
        self.answer({"results": [{"id": 550, "title": "Fight Club"}]})
        self.assertEqual(self.catalog.get_trending_movies(), [{"id": 550, "title": "Fight Club"}])
        self.assertEqual(self.catalog.get_trending_movies(), [{"id": 550, "title": "Fight Club"}])
        self.assertEqual(self.session.get.call_count, 1)
        url = self.session.get.call_args.args[0]
        self.assertTrue(url.endswith("/trending/movie/week"))

    def test_failures_are_not_cached(self) -> None:
        self.session.get.side_effect = [requests.ConnectionError("down"), fake_response({"results": [{"id": 1}]})]
        self.assertEqual(self.catalog.get_trending_movies(), [])
        self.assertEqual(self.catalog.get_trending_movies(), [{"id": 1}])

    def test_search_movies(self) -> None:
        self.answer({"Response": "True", "Search": [{"Title": "Heat", "imdbID": "tt0113277"}]})
        self.assertEqual(self.catalog.search_movies(" Heat "), [{"Title": "Heat", "imdbID": "tt0113277"}])
        self.assertEqual(self.session.get.call_args.kwargs["params"]["s"], "Heat")

    def test_search_without_results(self) -> None:
        self.answer({"Response": "False", "Error": "Movie not found!"})
        self.assertEqual(self.catalog.search_movies("zzzz"), [])
        self.assertEqual(self.catalog.search_movies("   "), [])

    def test_details_by_source(self) -> None:
        self.answer({"id": 550, "title": "Fight Club"}, {"Response": "True", "Title": "Heat"})
        self.assertEqual(self.catalog.get_movie_details("550")["title"], "Fight Club")
        self.assertEqual(self.session.get.call_args.kwargs["params"]["append_to_response"], "external_ids")
        self.assertEqual(self.catalog.get_movie_details("tt0113277")["Title"], "Heat")
        self.assertEqual(self.session.get.call_args.kwargs["params"]["i"], "tt0113277")

    def test_details_failure(self) -> None:
        self.session.get.return_value = fake_response({}, status_code=404)
        self.assertIsNone(self.catalog.get_movie_details("550"))
        self.assertIsNone(self.catalog.get_movie_details(""))

    def test_search_anime(self) -> None:
        self.answer({"data": [{"mal_id": 5114, "title": "Fullmetal Alchemist: Brotherhood"}]})
        self.assertEqual(self.catalog.search_anime("fullmetal")[0]["mal_id"], 5114)

    def test_trailer_prefers_trailer_titles(self) -> None:
        self.answer({
            "items": [
                {"id": {"videoId": "review1"}, "snippet": {"title": "Heat review"}},
                {"id": {"videoId": "abc123"}, "snippet": {"title": "Heat (1995) Official Trailer"}},
            ]
        })
        self.assertEqual(self.catalog.get_youtube_trailer("Heat", "1995"), "https://www.youtube.com/watch?v=abc123")

    def test_trailer_tries_broader_queries(self) -> None:
        self.answer(
            {"items": []},
            {"items": []},
            {"items": [{"id": {"videoId": "xyz"}, "snippet": {"title": "Heat"}}]},
        )
        self.assertEqual(self.catalog.get_youtube_trailer("Heat", "1995"), "https://www.youtube.com/watch?v=xyz")
        self.assertEqual(self.session.get.call_args.kwargs["params"]["q"], "Heat official trailer")

    def test_trailer_not_found(self) -> None:
        self.answer({"items": []}, {"items": []})
        self.assertIsNone(self.catalog.get_youtube_trailer("Heat"))

    def test_credits_from_imdb_id(self) -> None:
        self.answer(
            {"movie_results": [{"id": 949}]},
            {
                "cast": [{"id": 1, "name": "Al Pacino", "character": "Vincent Hanna", "order": 0, "profile_path": "/al.jpg"}],
                "crew": [{"id": 2, "name": "Michael Mann", "job": "Director", "department": "Directing"}],
            },
        )
        credits = self.catalog.get_movie_credits("tt0113277")
        self.assertEqual(credits["id"], 949)
        self.assertEqual(credits["cast"][0]["profile_path"], "https://image.tmdb.org/t/p/w300/al.jpg")
        self.assertEqual(credits["crew"][0]["job"], "Director")
        self.assertIsNone(credits["crew"][0]["profile_path"])
        self.assertTrue(self.session.get.call_args.args[0].endswith("/movie/949/credits"))

    def test_credits_failure(self) -> None:
        self.answer({"movie_results": []})
        self.assertEqual(self.catalog.get_movie_credits("tt0000000"), {"cast": [], "crew": []})


if __name__ == "__main__":
    unittest.main()
