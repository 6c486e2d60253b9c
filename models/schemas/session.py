from marshmallow import Schema, fields, validate


class RefreshRequestSchema(Schema):
    refresh_token = fields.String(required=True, validate=validate.Length(min=1, max=128))


class LogoutRequestSchema(Schema):
    refresh_token = fields.String(load_default=None, validate=validate.Length(max=128))


class SessionOutSchema(Schema):
    """An active refresh token as shown to its owner or to staff. Never the full value."""
    id = fields.String()
    token = fields.String(attribute="masked")
    created_at = fields.DateTime()
    expires_at = fields.DateTime()
    ip_address = fields.String(allow_none=True)
    user_agent = fields.String(allow_none=True)
