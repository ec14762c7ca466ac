# forum_bridge/models/forum.py
"""
Discussion platform tables the importer writes into.

Imported entities carry their correlation metadata as rows in
``custom_fields`` (``import_id``, ``is_disabled``, ``is_deleted`` ...), which is
also what the cleanup command uses to find them again.
"""

from flask import current_app
from sqlalchemy import Index
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import object_session

from .base import BaseModel, db

SYSTEM_USER_ID = -1


def _serialize_custom_value(value):
    if value is None:
        return None
    if isinstance(value, bool):
        return "t" if value else "f"
    return str(value)


class CustomField(BaseModel):
    """Name/value annotation attached to any forum entity."""

    __tablename__ = "custom_fields"

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(20), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(100), nullable=False, index=True)
    value = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("entity_type", "entity_id", "name", name="uq_custom_field_entity_name"),
        Index("idx_custom_fields_entity", "entity_type", "entity_id"),
    )

    def __repr__(self):
        return f"<CustomField {self.entity_type}:{self.entity_id} {self.name}={self.value!r}>"


class CustomFieldsMixin:
    """Accessors for ``custom_fields`` rows owned by a model instance."""

    custom_field_entity_type = None

    def _custom_field_query(self):
        return CustomField.query.filter_by(entity_type=self.custom_field_entity_type, entity_id=self.id)

    @property
    def custom_fields(self):
        rows = db.session.query(CustomField.name, CustomField.value).filter_by(
            entity_type=self.custom_field_entity_type, entity_id=self.id
        )
        return {name: value for name, value in rows}

    def get_custom_field(self, name):
        """Read a custom field straight from the database."""
        return (
            db.session.query(CustomField.value)
            .filter_by(entity_type=self.custom_field_entity_type, entity_id=self.id, name=name)
            .scalar()
        )

    def set_custom_field(self, name, value):
        """Insert or overwrite a single custom field. Booleans persist as ``t``/``f``."""
        if self.id is None:
            db.session.flush()
        field = self._custom_field_query().filter_by(name=name).first()
        if field is None:
            field = CustomField(entity_type=self.custom_field_entity_type, entity_id=self.id, name=name)
            db.session.add(field)
        field.value = _serialize_custom_value(value)
        return field

    def custom_flag(self, name):
        return self.get_custom_field(name) == "t"


class User(CustomFieldsMixin, BaseModel):
    """Discussion platform account."""

    __tablename__ = "users"
    custom_field_entity_type = "user"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(60), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)
    active = db.Column(db.Boolean, default=True, nullable=False)

    avatar = db.relationship("UserAvatar", back_populates="user", uselist=False, cascade="all, delete-orphan")
    memberships = db.relationship("GroupUser", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.username}>"

    @property
    def has_uploaded_avatar(self):
        return self.avatar is not None and self.avatar.data is not None

    @staticmethod
    def find_by_email(email):
        """Case-insensitive email lookup."""
        if not email:
            return None
        try:
            return User.query.filter(db.func.lower(User.email) == email.strip().lower()).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error finding user by email {email}: {str(e)}")
            raise


class UserAvatar(BaseModel):
    """Uploaded avatar image for an account."""

    __tablename__ = "user_avatars"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    source_url = db.Column(db.String(1000), nullable=True)
    content_type = db.Column(db.String(100), nullable=True)
    data = db.Column(db.LargeBinary, nullable=True)

    user = db.relationship("User", back_populates="avatar")


class SingleSignOnRecord(BaseModel):
    """Link between an account and an external single-sign-on identity."""

    __tablename__ = "single_sign_on_records"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = db.Column(db.String(255), nullable=False)


class Group(CustomFieldsMixin, BaseModel):
    """Access group; imported projects become groups named after their guid."""

    __tablename__ = "groups"
    custom_field_entity_type = "group"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False, index=True)
    visible = db.Column(db.Boolean, default=True, nullable=False)

    members = db.relationship("GroupUser", back_populates="group", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Group {self.name}>"

    @property
    def user_ids(self):
        return sorted(member.user_id for member in self.members)


class GroupUser(BaseModel):
    __tablename__ = "group_users"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    group = db.relationship("Group", back_populates="members")
    user = db.relationship("User", back_populates="memberships")

    __table_args__ = (db.UniqueConstraint("group_id", "user_id", name="uq_group_users_member"),)


class Category(CustomFieldsMixin, BaseModel):
    __tablename__ = "categories"
    custom_field_entity_type = "category"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    slug = db.Column(db.String(50), unique=True, nullable=False)
    color = db.Column(db.String(6), nullable=False, default="0088CC")

    topics = db.relationship("Topic", back_populates="category")

    def __repr__(self):
        return f"<Category {self.name}>"


class Topic(CustomFieldsMixin, BaseModel):
    """Discussion thread. Its first post holds the opening content."""

    __tablename__ = "topics"
    custom_field_entity_type = "topic"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    category = db.relationship("Category", back_populates="topics")
    posts = db.relationship("Post", back_populates="topic", order_by="Post.post_number")

    def __repr__(self):
        return f"<Topic {self.id} {self.title!r}>"

    @property
    def highest_post_number(self):
        session = object_session(self) or db.session
        return session.query(db.func.max(Post.post_number)).filter(Post.topic_id == self.id).scalar() or 0


class Post(CustomFieldsMixin, BaseModel):
    __tablename__ = "posts"
    custom_field_entity_type = "post"

    id = db.Column(db.Integer, primary_key=True)
    topic_id = db.Column(db.Integer, db.ForeignKey("topics.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    post_number = db.Column(db.Integer, nullable=False)
    reply_to_post_number = db.Column(db.Integer, nullable=True)
    raw = db.Column(db.Text, nullable=False, default="")
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    topic = db.relationship("Topic", back_populates="posts")

    __table_args__ = (db.UniqueConstraint("topic_id", "post_number", name="uq_posts_topic_post_number"),)

    def __repr__(self):
        return f"<Post {self.topic_id}#{self.post_number}>"
