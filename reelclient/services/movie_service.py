"""
Movie and review service calls for the Movie Review Client.
"""

import logging
from typing import Dict, Any, Optional

from reelshared.models import Movie, MoviePage, Review, UploadFile

logger = logging.getLogger(__name__)


class MovieService:
    """Backend movie and review endpoints."""

    def __init__(self, api_client):
        self.api_client = api_client

    async def get_movies(self, page: int = 1) -> MoviePage:
        """Fetch one page of the movie listing."""
        return MoviePage.from_dict(await self.api_client.get('movies/', params={'page': page}))

    async def get_movie(self, movie_id: int) -> Movie:
        return Movie.from_dict(await self.api_client.get(f'movies/{movie_id}/'))

    async def create_movie(self, fields: Dict[str, Any], poster: Optional[UploadFile] = None) -> Movie:
        """
        Create a movie. Sent as multipart when a poster is attached.

        Args:
            fields: Movie fields; ``genres`` may be a list of genre ids
            poster: Optional poster image
        """
        if poster is None:
            return Movie.from_dict(await self.api_client.post('movies/', json=fields))
        return Movie.from_dict(await self.api_client.post('movies/', form=self._form(fields, poster)))

    async def update_movie(self, movie_id: int, fields: Dict[str, Any],
                           poster: Optional[UploadFile] = None) -> Movie:
        path = f'movies/{movie_id}/'
        if poster is None:
            return Movie.from_dict(await self.api_client.put(path, json=fields))
        return Movie.from_dict(await self.api_client.put(path, form=self._form(fields, poster)))

    async def delete_movie(self, movie_id: int) -> None:
        await self.api_client.delete(f'movies/{movie_id}/')
        logger.info(f"Deleted movie {movie_id}")

    async def create_review(self, movie_id: int, rating: int, comment: Optional[str] = None) -> Review:
        payload = self._review_payload(rating, comment)
        return Review.from_dict(await self.api_client.post(f'movies/{movie_id}/reviews/', json=payload))

    async def update_review(self, review_id: int, rating: int, comment: Optional[str] = None) -> Review:
        payload = self._review_payload(rating, comment)
        return Review.from_dict(await self.api_client.put(f'movies/reviews/{review_id}/', json=payload))

    async def delete_review(self, review_id: int) -> None:
        await self.api_client.delete(f'movies/reviews/{review_id}/')

    @staticmethod
    def _review_payload(rating: int, comment: Optional[str]) -> Dict[str, Any]:
        if not 1 <= rating <= 5:
            raise ValueError("Rating must be between 1 and 5")
        payload: Dict[str, Any] = {'rating': rating}
        if comment:
            payload['comment'] = comment
        return payload

    @staticmethod
    def _form(fields: Dict[str, Any], poster: UploadFile) -> Dict[str, Any]:
        form = {}
        for key, value in fields.items():
            # Lists (e.g. genre ids) are sent as comma separated values
            form[key] = ','.join(str(v) for v in value) if isinstance(value, (list, tuple)) else value
        form['poster'] = poster
        return form
