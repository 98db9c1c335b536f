from flask import Blueprint

generation_bp = Blueprint('generation_api', __name__)


@generation_bp.route('/api/generate/options', methods=['GET'])
def generation_options():
    from prompt_studio import runtime

    return runtime.generation_options_impl()


@generation_bp.route('/api/generate/video-prompt', methods=['POST'])
def video_prompt():
    from prompt_studio import runtime

    return runtime.video_prompt_impl()


@generation_bp.route('/api/generate/product-ad-prompt', methods=['POST'])
def product_ad_prompt():
    from prompt_studio import runtime

    return runtime.product_ad_prompt_impl()


@generation_bp.route('/api/generate/influencer-prompt', methods=['POST'])
def influencer_prompt():
    from prompt_studio import runtime

    return runtime.influencer_prompt_impl()


@generation_bp.route('/api/generate/consistency', methods=['POST'])
def consistency_check():
    from prompt_studio import runtime

    return runtime.consistency_check_impl()


@generation_bp.route('/api/generate/image', methods=['POST'])
def generate_image():
    from prompt_studio import runtime

    return runtime.generate_image_impl()


@generation_bp.route('/api/generate/video', methods=['POST'])
def generate_video():
    from prompt_studio import runtime

    return runtime.generate_video_impl()


@generation_bp.route('/api/generate/speech', methods=['POST'])
def generate_speech():
    from prompt_studio import runtime

    return runtime.generate_speech_impl()


@generation_bp.route('/api/generate/storyboard', methods=['POST'])
def generate_storyboard():
    from prompt_studio import runtime

    return runtime.generate_storyboard_impl()


@generation_bp.route('/api/generate/storyboard/scene-image', methods=['POST'])
def storyboard_scene_image():
    from prompt_studio import runtime

    return runtime.storyboard_scene_image_impl()


@generation_bp.route('/api/generate/storyboard/video', methods=['POST'])
def storyboard_video():
    from prompt_studio import runtime

    return runtime.storyboard_video_impl()
