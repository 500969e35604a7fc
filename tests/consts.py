TEST_REGION = "us-east-1"
TEST_REPOSITORY = "base-infra-dev"
TEST_CONTAINER = "base-infra"
TEST_COMMIT_SHA = "3f2a9c1d8e7b6a5f4e3d2c1b0a9f8e7d6c5b4a39"
TEST_SHORT_SHA = "3f2a9c1"
TEST_ENDPOINT = "http://base-infra-qa-123456.us-east-1.elb.amazonaws.com"
TEST_MANIFEST = (
    '{"schemaVersion": 2, "mediaType": "application/vnd.docker.distribution.manifest.v2+json", '
    '"config": {"digest": "sha256:4f53cda18c2baa0c0354bb5f9a3ecbe5ed12ab4d8e11ba873c2f11161202b945"}}'
)
