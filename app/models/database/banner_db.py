"""
促销横幅数据库模型
"""

from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, JSON, Index
from datetime import datetime
from app.core.database import Base


class PromotionalBannerDB(Base):
    """促销横幅数据库表"""

    __tablename__ = "promotional_banners"

    banner_id = Column(String(50), primary_key=True, comment="横幅ID")
    title = Column(String(200), nullable=False, comment="标题")
    subtitle = Column(String(300), comment="副标题")
    description = Column(Text, comment="描述")
    banner_type = Column(String(20), nullable=False, comment="展示形式")
    position = Column(String(20), nullable=False, comment="位置")
    priority = Column(Integer, nullable=False, default=1, comment="优先级1-10")

    # 生效时间
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")
    start_date = Column(DateTime, nullable=False, comment="开始时间")
    end_date = Column(DateTime, nullable=False, comment="结束时间")

    # 投放规则与内容
    target_audience = Column(JSON, default=dict, comment="目标人群")
    display_rules = Column(JSON, default=dict, comment="展示规则")
    content = Column(JSON, default=dict, comment="展示内容")

    # 追踪计数，只通过原子自增更新
    impressions = Column(Integer, nullable=False, default=0, comment="曝光次数")
    clicks = Column(Integer, nullable=False, default=0, comment="点击次数")
    conversions = Column(Integer, nullable=False, default=0, comment="转化次数")
    unique_views = Column(Integer, nullable=False, default=0, comment="独立访客数")

    campaign = Column(String(100), comment="所属活动")
    tags = Column(JSON, default=list, comment="标签")

    created_at = Column(DateTime, default=datetime.now, comment="创建时间")
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    __table_args__ = (
        Index("ix_banners_active_window", "is_active", "start_date", "end_date"),
        Index("ix_banners_type_position", "banner_type", "position"),
        {'comment': '促销横幅表'}
    )
