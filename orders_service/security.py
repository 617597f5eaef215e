from jose import JWTError, jwt

from orders_service.config import ALGORITHM, SECRET_KEY


def decode_token(token: str, secret: str = SECRET_KEY, alg: str = ALGORITHM) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[alg])
    except JWTError as e:
        raise ValueError("Invalid token") from e
