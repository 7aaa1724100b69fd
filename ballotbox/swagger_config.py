def swagger_template(app=None):
    title = "Ballot Token Service API"
    version = "1.0.0"

    if app:
        title = app.config.get("SWAGGER_TITLE", title)
        version = app.config.get("SWAGGER_VERSION", version)

    return {
        "swagger": "2.0",
        "info": {
            "title": title,
            "version": version,
            "description": "Ballot token issuing, kiosk scanning and anonymous vote recording for in-person elections.",
        },
        "securityDefinitions": {
            "BearerAuth": {
                "type": "apiKey",
                "name": "Authorization",
                "in": "header",
                "description": "JWT Authorization header: Bearer <token>"
            }
        },
        "definitions": {
            "ErrorResponse": {
                "type": "object",
                "properties": {
                    "success": {"type": "boolean", "example": False},
                    "error": {
                        "type": "object",
                        "properties": {
                            "code": {"type": "string", "example": "INVALID_STATE"},
                            "message": {"type": "string", "example": "This ballot token has already been used."},
                            "details": {"type": "object", "example": {"current_state": "used"}}
                        }
                    },
                    "request_id": {"type": "string"}
                }
            }
        }
    }
