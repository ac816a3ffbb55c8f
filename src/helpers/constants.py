import pathlib

# ENV VARS
DTF_STORAGE_PATH_ENV_VAR = "DTF_STORAGE_PATH"
ENV_VARS = [
    DTF_STORAGE_PATH_ENV_VAR,
]

# DATA
# Note: data stored under this path does not save to GitHUb
LOCAL_STORAGE_FOLDER = pathlib.Path(__file__).parent.parent.parent / pathlib.Path(
    "local/"
)
DTF_DEFAULT_STORAGE_PATH = LOCAL_STORAGE_FOLDER / "dtf_storage"
DTF_FILE_SUFFIX = ".dtf"
