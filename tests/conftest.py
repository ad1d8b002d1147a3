import pytest

from stashkit.services.blob_storage import BlobFileStorage
from stashkit.services.local_storage import LocalFileStorage
from stashkit.services.object_storage import S3FileStorage
from stashkit.services.options import BlobStorageOptions, LocalStorageOptions, S3StorageOptions
from tests.mocks import FakeContainerClient, FakeS3Client, make_image


@pytest.fixture
def local_options(tmp_path):
    return LocalStorageOptions(base_path=str(tmp_path / "files"))


@pytest.fixture
def local_storage(local_options):
    return LocalFileStorage(local_options)


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def s3_storage(s3_client):
    return S3FileStorage(S3StorageOptions(bucket_name="bucket"), client=s3_client)


@pytest.fixture
def blob_container():
    return FakeContainerClient()


@pytest.fixture
def blob_storage(blob_container):
    return BlobFileStorage(BlobStorageOptions(container_name="files"), container=blob_container)


@pytest.fixture
def png_bytes():
    return make_image()
