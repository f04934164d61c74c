class S3FileSystemFactory:
    """ZConfig factory for S3FileSystem."""

    def __init__(self, config):
        self.config = config
        self.name = config.getSectionName()

    def open(self):
        from notebookfs.s3 import S3FileSystem

        config = self.config
        return S3FileSystem.new(
            config.bucket_url,
            config.access_key_id,
            config.secret_access_key,
            region=config.region,
            external_id=config.external_id,
            prefix=config.id_prefix,
            copy_concurrency=config.copy_concurrency,
            copy_timeout=config.copy_timeout,
        )
