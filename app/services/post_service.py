"""
Business unit announcements.

Managers and admins publish posts to their business unit, optionally only for
other managers. Employees only ever see ALL_EMPLOYEES posts.
"""
import logging
from typing import List, Tuple

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.exceptions import ForbiddenError, PostNotFoundError
from app.events.domain import DomainEventBus, PostCreated
from app.models.exchange_shift import new_id
from app.models.post import Post, TargetAudience
from app.repositories.post_repository import PostRepository
from app.schemas.auth import CurrentUser
from app.schemas.post import PostCreate, PostResponse

logger = logging.getLogger(__name__)


def visible_audiences(user: CurrentUser) -> List[TargetAudience]:
    if user.is_manager:
        return [TargetAudience.ALL_EMPLOYEES, TargetAudience.MANAGERS_ONLY]
    return [TargetAudience.ALL_EMPLOYEES]


class PostService:

    def __init__(self, session_factory: async_sessionmaker, event_bus: DomainEventBus):
        self.session_factory = session_factory
        self.event_bus = event_bus

    async def create_post(self, data: PostCreate, business_unit_id: str, author: CurrentUser) -> PostResponse:
        if not author.is_manager:
            raise ForbiddenError("Only managers and admins can create posts")

        async with self.session_factory() as session, session.begin():
            post = await PostRepository(session).add(Post(
                id=new_id(),
                title=data.title,
                body=data.body,
                author_user_id=author.id,
                business_unit_id=business_unit_id,
                target_audience=data.target_audience,
                creator_first_name=author.first_name,
                creator_last_name=author.last_name,
            ))
            result = PostResponse.model_validate(post)

        logger.info(f"Post {result.id} created by {author.id} for business unit {business_unit_id}")
        self.event_bus.publish(PostCreated(post=result))
        return result

    async def get_posts(self, business_unit_id: str, user: CurrentUser, page: int, size: int) -> Tuple[List[PostResponse], int]:
        audiences = visible_audiences(user)
        async with self.session_factory() as session:
            posts = PostRepository(session)
            items = await posts.list_by_business_unit(business_unit_id, audiences, offset=page * size, limit=size)
            total = await posts.count_by_business_unit(business_unit_id, audiences)
        return [PostResponse.model_validate(item) for item in items], total

    async def get_my_posts(self, author: CurrentUser) -> List[PostResponse]:
        if not author.is_manager:
            raise ForbiddenError("Only managers and admins have authored posts")
        async with self.session_factory() as session:
            items = await PostRepository(session).list_by_author(author.id)
        return [PostResponse.model_validate(item) for item in items]

    async def get_post(self, post_id: str, user: CurrentUser) -> PostResponse:
        async with self.session_factory() as session:
            post = await PostRepository(session).get(post_id)
        if post is None:
            raise PostNotFoundError(post_id)
        if post.target_audience not in visible_audiences(user):
            raise ForbiddenError("This post is only visible to managers")
        if user.business_unit_id and not user.is_admin and post.business_unit_id != user.business_unit_id:
            raise ForbiddenError(f"Post {post_id} belongs to another business unit")
        return PostResponse.model_validate(post)

    async def delete_post(self, post_id: str, user: CurrentUser) -> None:
        async with self.session_factory() as session, session.begin():
            posts = PostRepository(session)
            post = await posts.get(post_id)
            if post is None:
                raise PostNotFoundError(post_id)
            if post.author_user_id != user.id and not user.is_admin:
                raise ForbiddenError("Only the author or an admin can delete this post")
            await posts.delete(post_id)
        logger.info(f"Post {post_id} deleted by {user.id}")
