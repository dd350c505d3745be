"""
Example of API contract checks with ApiCall against a running Users service

    python main.py                     # in one shell
    python api_contract_example.py     # in another
"""

import asyncio
import logging
import os

from dotenv import load_dotenv

from apicall import ApiCall, ApiMethod

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API_BASE_URL = os.getenv("TEST_API_BASE_URL", "http://localhost:3000")


async def users_full_api_contract():
    """Complete CRUD cycle via API contracts only"""
    users_url = f"{API_BASE_URL}/users"

    # === CREATE ===
    created = await (
        ApiCall(users_url, ApiMethod.POST)
        .enable_logging()
        .set_body({"name": "Krishna", "job": "Tester", "age": 21})
        .expect_status(201)
        .expect_response(lambda res: res.body["isMarried"] is True or AssertionError("isMarried default missing"))
        .done(lambda res: res.body)
    )
    user_url = f"{users_url}/{created['_id']}"

    # === READ ===
    await ApiCall(user_url, ApiMethod.GET).enable_logging().expect_status(200, created).done()

    # === REPLACE ===
    await (
        ApiCall(user_url, ApiMethod.PUT)
        .enable_logging()
        .set_body({"name": "Krishna", "job": "Lead", "age": 22, "isMarried": False})
        .expect_status(200)
        .done()
    )

    # === DELETE ===
    await ApiCall(user_url, ApiMethod.DELETE).enable_logging().expect_status(200).done()

    # === READ (absent records come back as null) ===
    await ApiCall(user_url, ApiMethod.GET).enable_logging().expect_status(200).expect_body("null").done()

    logger.info("Users API contract verified")


if __name__ == "__main__":
    asyncio.run(users_full_api_contract())
