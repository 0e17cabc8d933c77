from typing import List, Optional, Sequence
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.post import Post, TargetAudience


class PostRepository:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, post_id: str) -> Optional[Post]:
        return await self.session.get(Post, post_id)

    async def list_by_business_unit(
        self,
        business_unit_id: str,
        audiences: Sequence[TargetAudience],
        offset: int,
        limit: int,
    ) -> List[Post]:
        result = await self.session.execute(
            select(Post)
            .where(
                Post.business_unit_id == business_unit_id,
                Post.target_audience.in_(list(audiences)),
            )
            .order_by(Post.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_business_unit(self, business_unit_id: str, audiences: Sequence[TargetAudience]) -> int:
        result = await self.session.execute(
            select(func.count(Post.id)).where(
                Post.business_unit_id == business_unit_id,
                Post.target_audience.in_(list(audiences)),
            )
        )
        return result.scalar_one()

    async def list_by_author(self, author_user_id: str) -> List[Post]:
        result = await self.session.execute(
            select(Post)
            .where(Post.author_user_id == author_user_id)
            .order_by(Post.created_at.desc())
        )
        return list(result.scalars().all())

    async def add(self, post: Post) -> Post:
        self.session.add(post)
        await self.session.flush()
        return post

    async def delete(self, post_id: str) -> None:
        await self.session.execute(delete(Post).where(Post.id == post_id))
