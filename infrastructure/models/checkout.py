"""
结账相关数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, String,
    UniqueConstraint,
)

from .base import Base, new_id, utcnow


class UserModel(Base):
    """用户表：只映射结账流程用到的列"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=True, index=True, comment="邮箱")
    name = Column(String(255), nullable=True, comment="显示名")
    is_creator = Column(Boolean, nullable=False, default=False, comment="是否已激活创作者账户")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<UserModel(id='{self.id}', is_creator={self.is_creator})>"


class ContentModel(Base):
    __tablename__ = "contents"

    id = Column(String(36), primary_key=True, default=new_id)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True, comment="内容创作者")
    title = Column(String(255), nullable=False, comment="标题")
    price = Column(Integer, nullable=True, comment="价格（XOF，整数）")
    status = Column(String(50), nullable=True, default="published", comment="内容状态")
    views = Column(Integer, nullable=False, default=0, comment="浏览次数")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_contents_price_created", "price", "created_at"),
    )

    def __repr__(self):
        return f"<ContentModel(id='{self.id}', title='{self.title}', price={self.price})>"


class TransactionModel(Base):
    """
    交易记录表

    每次确认到账的结算对应一行，payment_reference 唯一，
    重复回调/重复轮询不会产生第二条记录
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True, comment="付款人")
    creator_id = Column(String(36), nullable=True, index=True, comment="收款创作者")
    content_id = Column(String(36), ForeignKey("contents.id"), nullable=True, comment="购买的内容")
    amount = Column(Integer, nullable=False, comment="金额")
    currency = Column(String(3), nullable=False, default="XOF", comment="货币代码 ISO-4217")
    payment_method = Column(String(50), nullable=False, default="mobile_money")
    status = Column(String(20), nullable=False, default="paid", index=True)
    type = Column(String(50), nullable=False, comment="content_purchase / creator_activation")
    payment_reference = Column(String(200), nullable=True, comment="支付渠道流水号")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("payment_reference", name="uq_transactions_payment_reference"),
        Index("ix_transactions_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return (
            f"<TransactionModel(id='{self.id}', user_id='{self.user_id}', "
            f"amount={self.amount}, type='{self.type}')>"
        )


class PurchaseModel(Base):
    __tablename__ = "purchases"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    content_id = Column(String(36), ForeignKey("contents.id"), nullable=False, index=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False)
    amount_paid = Column(Integer, nullable=False)
    purchased_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "content_id", name="uq_purchases_user_content"),
    )

    def __repr__(self):
        return f"<PurchaseModel(user_id='{self.user_id}', content_id='{self.content_id}')>"
