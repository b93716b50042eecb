"""Credentials loading from a credentials.md file and command-line flags."""

import os
import re
from dataclasses import dataclass
from typing import Dict, Optional


DEFAULT_REDIRECT_URI = "http://localhost:8888/callback"

REQUIRED_KEYS = [
    'SPOTIFY_CLIENT_ID',
    'SPOTIFY_CLIENT_SECRET',
]


class CredentialsError(Exception):
    """Exception raised when credentials cannot be parsed."""
    pass


@dataclass(frozen=True)
class Credentials:
    """Spotify application credentials passed explicitly to the client."""
    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI

    def __repr__(self) -> str:
        return f"Credentials(client_id={self.client_id!r}, redirect_uri={self.redirect_uri!r})"


def parse_credentials(credentials_path: str = "credentials.md") -> Dict[str, str]:
    """
    Parse credentials from a credentials.md file.
    
    Args:
        credentials_path: Path to the credentials file (default: credentials.md)
    
    Returns:
        Dictionary containing credentials with keys:
        - SPOTIFY_CLIENT_ID
        - SPOTIFY_CLIENT_SECRET
        - SPOTIFY_REDIRECT_URI (if present)
    
    Raises:
        CredentialsError: If file not found or required credentials are missing
    """
    if not os.path.exists(credentials_path):
        raise CredentialsError(f"Credentials file not found: {credentials_path}")
    
    with open(credentials_path, 'r', encoding='utf-8') as f:
        content = f.read()
    
    credentials = {}
    
    pattern = r'([A-Z_]+)=(.+)'
    for key, value in re.findall(pattern, content):
        credentials[key] = value.strip()
    
    missing_keys = [key for key in REQUIRED_KEYS if key not in credentials]
    if missing_keys:
        raise CredentialsError(
            f"Missing required credentials: {', '.join(missing_keys)}"
        )
    
    return credentials


def load_credentials(
    credentials_path: Optional[str] = None,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    redirect_uri: Optional[str] = None
) -> Credentials:
    """
    Build Credentials from command-line values, falling back to a file.
    
    Values given explicitly always win over the file. The file is only read
    when the client id or secret is missing.
    
    Raises:
        CredentialsError: If the client id or secret cannot be found
    """
    file_values: Dict[str, str] = {}
    if not (client_id and client_secret):
        if not credentials_path:
            raise CredentialsError(
                "Missing required credentials: pass --client-id and --secret "
                "or provide a credentials file"
            )
        file_values = parse_credentials(credentials_path)
    
    return Credentials(
        client_id=client_id or file_values['SPOTIFY_CLIENT_ID'],
        client_secret=client_secret or file_values['SPOTIFY_CLIENT_SECRET'],
        redirect_uri=(
            redirect_uri
            or file_values.get('SPOTIFY_REDIRECT_URI')
            or DEFAULT_REDIRECT_URI
        )
    )
