import asyncio
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from photomatch.faces.base import BaseFaceRecognizer
from photomatch.faces.exceptions import (
    CollectionNotFoundError,
    FaceRecognitionError,
    NoFacesDetectedError,
    RateLimitError,
)
from photomatch.faces.models import FaceMatch
from photomatch.logging.logger import Log

_THROTTLING_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "LimitExceededException",
}


class RekognitionFaceRecognizer(BaseFaceRecognizer):
    """AWS Rekognition adapter reading images straight from the S3 bucket."""

    def __init__(
        self,
        *,
        bucket_name: str,
        region: str,
        access_key_id: str = "",
        secret_access_key: str = "",
        max_faces: int = 100,
        client: Any | None = None,
    ) -> None:
        self._bucket = bucket_name
        self._max_faces = max_faces
        self._client = client or boto3.client(
            "rekognition",
            region_name=region,
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
        )

    async def create_collection(self, collection_id: str) -> bool:
        try:
            await self._call(self._client.create_collection, CollectionId=collection_id)
        except FaceRecognitionError as exc:
            cause = exc.__cause__
            if isinstance(cause, ClientError) and _error_code(cause) == "ResourceAlreadyExistsException":
                Log.debug(f"Collection {collection_id} already exists")
                return False
            raise
        Log.info(f"Created face collection {collection_id}")
        return True

    async def index_image(self, collection_id: str, image_key: str, external_id: str) -> list[str]:
        response = await self._call(
            self._client.index_faces,
            CollectionId=collection_id,
            Image=self._s3_image(image_key),
            ExternalImageId=external_id,
            MaxFaces=self._max_faces,
            QualityFilter="NONE",
            DetectionAttributes=["DEFAULT"],
        )
        face_ids = [
            record["Face"]["FaceId"]
            for record in response.get("FaceRecords", [])
            if record.get("Face", {}).get("FaceId")
        ]
        unindexed = response.get("UnindexedFaces", [])
        if unindexed:
            reasons = sorted({r for face in unindexed for r in face.get("Reasons", [])})
            Log.debug(f"{len(unindexed)} faces in {image_key} not indexed: {reasons}")
        return face_ids

    async def search_by_image(
        self,
        collection_id: str,
        image_key: str,
        max_results: int,
        min_similarity: float,
    ) -> list[FaceMatch]:
        response = await self._call(
            self._client.search_faces_by_image,
            CollectionId=collection_id,
            Image=self._s3_image(image_key),
            MaxFaces=max_results,
            FaceMatchThreshold=min_similarity,
        )
        matches: list[FaceMatch] = []
        for match in response.get("FaceMatches", []):
            face = match.get("Face", {})
            external_id = face.get("ExternalImageId")
            if not external_id:
                continue
            matches.append(
                FaceMatch(
                    external_image_id=external_id,
                    similarity=float(match.get("Similarity", 0.0)),
                    face_id=face.get("FaceId", ""),
                )
            )
        return matches

    async def delete_faces(self, collection_id: str, face_ids: list[str]) -> None:
        if not face_ids:
            return
        await self._call(self._client.delete_faces, CollectionId=collection_id, FaceIds=face_ids)

    def _s3_image(self, image_key: str) -> dict[str, Any]:
        return {"S3Object": {"Bucket": self._bucket, "Name": image_key}}

    async def _call(self, func: Any, /, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, **kwargs)
        except ClientError as exc:
            raise _translate(exc) from exc
        except BotoCoreError as exc:
            raise FaceRecognitionError(f"Rekognition transport error: {exc}") from exc


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _translate(exc: ClientError) -> FaceRecognitionError:
    code = _error_code(exc)
    message = str(exc.response.get("Error", {}).get("Message", exc))
    if code in _THROTTLING_CODES or "Provisioned rate exceeded" in message:
        return RateLimitError(f"Rekognition throttled request ({code}): {message}")
    if code == "ResourceNotFoundException":
        return CollectionNotFoundError(message)
    if code == "InvalidParameterException" and "no faces" in message.lower():
        return NoFacesDetectedError(message)
    return FaceRecognitionError(f"Rekognition error ({code}): {message}")
