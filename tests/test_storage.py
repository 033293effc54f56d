import pytest

from s3_file_manager.errors import IoFailure, RemoteFailure
from s3_file_manager.storage import (
    ClientConfig,
    EnvironmentCredentials,
    ListPage,
    S3Storage,
    StaticCredentials,
    make_s3_client,
    object_url,
)
from tests.consts import TEST_BUCKET_NAME, TEST_REGION

ALL_USERS = "http://acs.amazonaws.com/groups/global/AllUsers"


def _public_read_grants(s3_client, key):
    acl = s3_client.get_object_acl(Bucket=TEST_BUCKET_NAME, Key=key)
    return [
        g for g in acl["Grants"]
        if g["Grantee"].get("URI") == ALL_USERS and g["Permission"] == "READ"
    ]


def test_object_url():
    assert object_url("b", "r", "k") == "https://b.s3.r.amazonaws.com/k"


def test_put_object_uploads_file_contents(storage, mocked_aws, tmp_path):
    f = tmp_path / "cat.png"
    f.write_bytes(b"\x89PNG fake")

    storage.put_object(TEST_BUCKET_NAME, "cat.png", f)

    obj = mocked_aws.get_object(Bucket=TEST_BUCKET_NAME, Key="cat.png")
    assert obj["Body"].read() == b"\x89PNG fake"
    assert _public_read_grants(mocked_aws, "cat.png") == []


def test_put_object_overwrites_existing_key(storage, mocked_aws, tmp_path):
    first = tmp_path / "one" / "dup.txt"
    second = tmp_path / "two" / "dup.txt"
    for path, data in ((first, b"first"), (second, b"second")):
        path.parent.mkdir()
        path.write_bytes(data)

    storage.put_object(TEST_BUCKET_NAME, "dup.txt", first)
    storage.put_object(TEST_BUCKET_NAME, "dup.txt", second)

    obj = mocked_aws.get_object(Bucket=TEST_BUCKET_NAME, Key="dup.txt")
    assert obj["Body"].read() == b"second"


def test_put_object_public_read(mocked_aws, tmp_path):
    f = tmp_path / "public.png"
    f.write_bytes(b"data")

    S3Storage(mocked_aws, make_public=True).put_object(TEST_BUCKET_NAME, "public.png", f)

    assert len(_public_read_grants(mocked_aws, "public.png")) == 1


def test_put_object_missing_file(storage, tmp_path):
    with pytest.raises(IoFailure):
        storage.put_object(TEST_BUCKET_NAME, "missing.png", tmp_path / "missing.png")


def test_put_object_missing_bucket(storage, tmp_path):
    f = tmp_path / "a.png"
    f.write_bytes(b"data")
    with pytest.raises(RemoteFailure):
        storage.put_object("no-such-bucket", "a.png", f)


def test_list_objects_paginates(storage, mocked_aws):
    for key in ("k1", "k2", "k3"):
        mocked_aws.put_object(Bucket=TEST_BUCKET_NAME, Key=key, Body=b"x")

    first = storage.list_objects(TEST_BUCKET_NAME, 2)
    assert first.objects == ["k1", "k2"]
    assert first.continuation_token

    second = storage.list_objects(TEST_BUCKET_NAME, 2, first.continuation_token)
    assert second == ListPage(objects=["k3"], continuation_token=None)


def test_list_objects_empty_bucket(storage):
    assert storage.list_objects(TEST_BUCKET_NAME, 100) == ListPage(objects=[], continuation_token=None)


def test_list_objects_missing_bucket(storage):
    with pytest.raises(RemoteFailure):
        storage.list_objects("no-such-bucket", 10)


def test_list_all_objects_follows_tokens(storage, mocked_aws):
    keys = [f"img-{i:02d}.png" for i in range(7)]
    for key in keys:
        mocked_aws.put_object(Bucket=TEST_BUCKET_NAME, Key=key, Body=b"x")

    assert list(storage.list_all_objects(TEST_BUCKET_NAME, 3)) == keys


def test_environment_credentials(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIA")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")
    monkeypatch.delenv("AWS_SESSION_TOKEN", raising=False)
    assert EnvironmentCredentials().resolve() == {
        "aws_access_key_id": "AKIA",
        "aws_secret_access_key": "secret",
    }

    monkeypatch.delenv("AWS_SECRET_ACCESS_KEY")
    assert EnvironmentCredentials().resolve() is None


def test_static_credentials_reach_client(aws_env):
    config = ClientConfig(bucket=TEST_BUCKET_NAME, region=TEST_REGION)
    client = make_s3_client(config, StaticCredentials("fake-key", "fake-secret", "fake-token"))

    creds = client._request_signer._credentials
    assert creds.access_key == "fake-key"
    assert creds.secret_key == "fake-secret"
    assert creds.token == "fake-token"
    assert client.meta.region_name == TEST_REGION


def test_iter_pages_reports_truncation(storage, mocked_aws):
    for key in ("k1", "k2", "k3"):
        mocked_aws.put_object(Bucket=TEST_BUCKET_NAME, Key=key, Body=b"x")

    pages = list(storage.iter_pages(TEST_BUCKET_NAME, 2))

    assert [p.objects for p in pages] == [["k1", "k2"], ["k3"]]
    assert pages[0].continuation_token
    assert pages[1].continuation_token is None


def test_iter_pages_missing_bucket(storage):
    with pytest.raises(RemoteFailure):
        list(storage.iter_pages("no-such-bucket", 10))
