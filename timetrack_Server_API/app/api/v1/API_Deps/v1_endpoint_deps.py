# v1_endpoint_deps.py
# Description: Credential extractors shared by every v1 endpoint. They only read the request; verification
# happens in AuthNZ.
#
# 3rd-party Libraries
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer
#
#######################################################################################################################
#
# Static Variables

# Single-user mode: the shared key in the X-API-KEY header
api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False,
                              description="Single-user mode API key")

# Multi-user mode: 'Authorization: Bearer <jwt>'. Tokens come from the external identity
# provider, so tokenUrl only feeds the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False,
                                     description="Multi-user mode JWT; 'sub' is the owner id")

#
# End of v1_endpoint_deps.py
#######################################################################################################################
