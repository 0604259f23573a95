"""
Core data models for the Movie Review Client.

This module defines the data structures shared by the HTTP access layer,
the credential store and the thin service callers.
"""

from dataclasses import dataclass, field, asdict
from typing import List, Optional, Dict, Any


@dataclass(frozen=True)
class CredentialPair:
    """An access/refresh token pair issued by the backend."""
    access: str
    refresh: str

    def __post_init__(self):
        if not self.access:
            raise ValueError("Access token cannot be empty")

    def with_access(self, access: str) -> 'CredentialPair':
        """Return a new pair carrying a fresh access token and the same refresh token."""
        return CredentialPair(access=access, refresh=self.refresh)

    def to_dict(self) -> Dict[str, str]:
        return {'access': self.access, 'refresh': self.refresh}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CredentialPair':
        return cls(access=data['access'], refresh=data.get('refresh') or '')

    def __repr__(self) -> str:
        return "CredentialPair(access=***, refresh=***)"


@dataclass
class UploadFile:
    """A file part of a multipart form submission."""
    filename: str
    content: bytes
    content_type: str = 'application/octet-stream'


@dataclass
class RequestDescriptor:
    """
    Everything needed to issue (or re-issue) a single HTTP request.

    Multipart bodies are kept as plain ``form`` fields rather than a built
    form object so the request can be encoded again on replay.

    The ``retried`` flag is set when the request enters the token refresh
    flow; a descriptor is replayed at most once. ``sent_authorization`` records
    the Authorization header value of the most recent attempt.
    """
    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    data: Any = None
    form: Optional[Dict[str, Any]] = None
    headers: Dict[str, Optional[str]] = field(default_factory=dict)
    authenticated: bool = True
    retried: bool = False
    sent_authorization: Optional[str] = None

    def __post_init__(self):
        self.method = self.method.upper()

    def mark_retried(self) -> None:
        self.retried = True

    def attach_credential(self, access: str) -> None:
        self.headers['Authorization'] = f'Bearer {access}'


@dataclass
class User:
    """Profile of the authenticated user."""
    id: int
    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    profile_picture: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=data['id'],
            username=data['username'],
            email=data.get('email', ''),
            first_name=data.get('first_name') or '',
            last_name=data.get('last_name') or '',
            profile_picture=data.get('profile_picture')
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.username


@dataclass
class Genre:
    """A movie genre."""
    id: int
    value: str
    label: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Genre':
        return cls(id=data['id'], value=data['value'], label=data.get('label', data['value']))


@dataclass
class Review:
    """A single user review of a movie."""
    id: int
    user: int
    rating: int
    created_at: str
    comment: Optional[str] = None
    user_name: Optional[str] = None

    def __post_init__(self):
        if not 1 <= self.rating <= 5:
            raise ValueError("Rating must be between 1 and 5")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Review':
        return cls(
            id=data['id'],
            user=data['user'],
            rating=data['rating'],
            created_at=data.get('created_at', ''),
            comment=data.get('comment'),
            user_name=data.get('user_name')
        )


@dataclass
class Movie:
    """A movie together with its reviews when the backend includes them."""
    id: int
    title: str
    description: str
    release_date: str
    duration: int
    director: str
    cast: str
    created_by: int
    poster: Optional[str] = None
    genres: List[Genre] = field(default_factory=list)
    reviews: List[Review] = field(default_factory=list)
    average_rating: Optional[float] = None
    user_review: Optional[Review] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Movie':
        user_review = data.get('user_review')
        return cls(
            id=data['id'],
            title=data['title'],
            description=data.get('description', ''),
            release_date=data.get('release_date', ''),
            duration=data.get('duration', 0),
            director=data.get('director', ''),
            cast=data.get('cast', ''),
            created_by=data.get('created_by', 0),
            poster=data.get('poster'),
            genres=[Genre.from_dict(g) for g in data.get('genres', [])],
            reviews=[Review.from_dict(r) for r in data.get('reviews') or []],
            average_rating=data.get('average_rating'),
            user_review=Review.from_dict(user_review) if user_review else None
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MoviePage:
    """One page of the paginated movie listing."""
    count: int
    next: Optional[str]
    previous: Optional[str]
    results: List[Movie] = field(default_factory=list)

    @property
    def has_next(self) -> bool:
        return self.next is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MoviePage':
        return cls(
            count=data.get('count', 0),
            next=data.get('next'),
            previous=data.get('previous'),
            results=[Movie.from_dict(m) for m in data.get('results', [])]
        )
