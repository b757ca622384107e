from backend_common.dependencies import make_get_current_user_id_header

get_current_user_id = make_get_current_user_id_header("volume-service")
